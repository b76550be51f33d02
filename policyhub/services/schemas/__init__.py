"""Shared dataclasses for policyhub services."""

from policyhub.services.schemas.domain import (
    Client,
    CustomField,
    FieldConfig,
    InputValue,
    ParsedTable,
    Rule,
    RuleDraft,
    RuleType,
    RuleTypeDraft,
    RuleVersion,
)
from policyhub.services.schemas.results import ImportResult, InputReport, RowOutcome

__all__ = [
    # Domain values
    "Client",
    "CustomField",
    "FieldConfig",
    "InputValue",
    "ParsedTable",
    "Rule",
    "RuleDraft",
    "RuleType",
    "RuleTypeDraft",
    "RuleVersion",
    # Result schemas
    "ImportResult",
    "InputReport",
    "RowOutcome",
]
