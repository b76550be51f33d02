"""Field-level input validation."""

import re
from collections.abc import Mapping

from db.enums import FieldType
from policyhub.services._helpers import stringify_value
from policyhub.services.schema_resolver import validation_rules
from policyhub.services.schemas.domain import RuleType
from policyhub.services.schemas.results import InputReport

ICD_CODE_PATTERN = re.compile(r"[A-Z]\d{1,2}(\.\d{1,3})?")


def is_valid_icd_code(value: str) -> bool:
    """Shape check only: ``A10`` and ``B01.1`` pass, ``a10`` does not."""
    return ICD_CODE_PATTERN.fullmatch(value) is not None


def missing_required(rule_type: RuleType, inputs: Mapping[str, object]) -> dict[str, str]:
    errors: dict[str, str] = {}
    for key, rules in validation_rules(rule_type).items():
        if rules["required"] and not stringify_value(inputs.get(key)).strip():
            errors[key] = f"{key} is required"
    return errors


def malformed_icd_codes(rule_type: RuleType, inputs: Mapping[str, object]) -> dict[str, str]:
    warnings: dict[str, str] = {}
    for f in rule_type.custom_fields:
        if f.type != FieldType.ICD_CODE:
            continue
        value: str = stringify_value(inputs.get(f.key))
        if value and not is_valid_icd_code(value):
            warnings[f.key] = f"{value} does not look like an ICD-10 code (e.g. A10, B01.1)"
    return warnings


def validate_inputs(rule_type: RuleType, inputs: Mapping[str, object]) -> InputReport:
    return InputReport(
        errors=missing_required(rule_type, inputs),
        warnings=malformed_icd_codes(rule_type, inputs),
    )
