"""Derives form defaults, field configuration and validation from a rule type."""

import re

from db.enums import FieldType, FormFieldType
from policyhub.services._types import FormDict, ValidationRuleDict
from policyhub.services.schemas.domain import CustomField, FieldConfig, RuleType

_WHITESPACE = re.compile(r"\s+")

_FORM_FIELD_TYPES: dict[FieldType, FormFieldType] = {
    FieldType.STRING: FormFieldType.TEXT,
    FieldType.ICD_CODE: FormFieldType.ICD_CODE,
}


def derive_field_key(label: str) -> str:
    """``"Phrase Text"`` -> ``"phrase_text"``."""
    return _WHITESPACE.sub("_", label.lower())


def normalize_field(custom_field: CustomField) -> CustomField:
    """Fill in a derived key when none was set explicitly."""
    if custom_field.key:
        return custom_field
    return CustomField(
        key=derive_field_key(custom_field.label),
        label=custom_field.label,
        type=custom_field.type,
        required=custom_field.required,
    )


def default_inputs(rule_type: RuleType) -> dict[str, str]:
    return {f.key: "" for f in rule_type.custom_fields}


def form_config(rule_type: RuleType) -> list[FieldConfig]:
    return [
        FieldConfig(
            field_type=_FORM_FIELD_TYPES.get(f.type, FormFieldType.TEXT),
            label=f.label,
            placeholder=f"Enter {f.label.lower()}",
            key=f.key,
            required=f.required,
        )
        for f in rule_type.custom_fields
    ]


def validation_rules(rule_type: RuleType) -> dict[str, ValidationRuleDict]:
    return {
        f.key: ValidationRuleDict(required=True) for f in rule_type.custom_fields if f.required
    }


def build_form(rule_type: RuleType) -> FormDict:
    """Everything a client needs to render the edit form for one rule type."""
    return FormDict(
        ruletype_id=rule_type.ruletype_id,
        name=rule_type.name,
        defaultInputs=default_inputs(rule_type),
        fields=[c.to_dict() for c in form_config(rule_type)],
        validation=validation_rules(rule_type),
    )
