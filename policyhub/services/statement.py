"""Human-readable rule statements."""

from collections.abc import Mapping

from policyhub.services._helpers import stringify_value
from policyhub.services.schemas.domain import RuleType

SEGMENT_SEPARATOR = " | "


def generate_statement(rule_type: RuleType, inputs: Mapping[str, object]) -> str:
    """Describe a rule as ``"<type>: <label>: <value> | <label>: <value>"``.

    Fields appear in declared order; a missing input renders as an empty value.
    Returns ``""`` for a rule type without fields.
    """
    if not rule_type.custom_fields:
        return ""
    parts: list[str] = [
        f"{f.label}: {stringify_value(inputs.get(f.key, ''))}" for f in rule_type.custom_fields
    ]
    return f"{rule_type.name}: {SEGMENT_SEPARATOR.join(parts)}"
