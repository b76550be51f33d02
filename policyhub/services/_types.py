"""Typed dicts for service-layer return values.

Keeps route-facing methods explicit about their shape instead of returning bare dicts.
Key casing follows the wire format: rules and clients are snake_case, rule-type field
lists and form configuration are camelCase.
"""

import sys

if sys.version_info >= (3, 12):
    from typing import TypedDict
else:
    from typing_extensions import TypedDict

# -- Rule types --------------------------------------------------------------


class CustomFieldDict(TypedDict):
    key: str
    label: str
    type: str
    required: bool


class RuleTypeDict(TypedDict):
    ruletype_id: int
    name: str
    customFields: list[CustomFieldDict]


class RuleTypeSummaryDict(RuleTypeDict):
    rule_count: int
    deletable: bool


# -- Form configuration ------------------------------------------------------


class FieldConfigDict(TypedDict):
    fieldType: str
    label: str
    placeholder: str
    key: str
    required: bool


class ValidationRuleDict(TypedDict):
    required: bool


class FormDict(TypedDict):
    ruletype_id: int
    name: str
    defaultInputs: dict[str, str]
    fields: list[FieldConfigDict]
    validation: dict[str, ValidationRuleDict]


class PreviewDict(TypedDict):
    statement: str
    errors: dict[str, str]
    warnings: dict[str, str]


# -- Clients and rules -------------------------------------------------------


class ClientDict(TypedDict):
    client_id: int
    client_name: str
    project_id: int


class RuleDict(TypedDict):
    rule_id: str
    project_id: int
    category_id: int
    ruletype_id: int
    inputs: dict[str, str | int | float | bool]
    statement: str | None
    rule_description: str | None
    regex: str | None
    valid_from: str | None
    valid_till: str | None
    version: int
    created_at: str | None
    updated_at: str | None


class RuleVersionDict(TypedDict):
    version_id: int
    rule_id: str
    version: int
    data: RuleDict
    changed_by: str
    changed_at: str


class DuplicateCheckDict(TypedDict):
    is_duplicate: bool
    duplicate_rule: RuleDict | None


# -- Mass entry --------------------------------------------------------------


class ParsedTableDict(TypedDict):
    headers: list[str]
    rows: list[dict[str, str]]
    notice: str | None


class ImportRowDict(TypedDict):
    row: int
    status: str
    inputs: dict[str, str]
    rule_id: str | None
    message: str | None
    warnings: dict[str, str]


class ImportSummaryDict(TypedDict):
    ruletype_id: int
    project_id: int
    total: int
    created: int
    duplicates: int
    invalid: int
    failed: int
    notice: str | None
    rows: list[ImportRowDict]


# -- Health ------------------------------------------------------------------


class DbInfoDict(TypedDict, total=False):
    backend_type: str
    database_url_or_path: str | None
    tables_present: list[str]
    tables_missing: list[str]
    schema_initialized: bool
    error: str
    pid: int
