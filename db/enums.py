"""Enumeration types for PolicyHub."""

from enum import Enum


class FieldType(str, Enum):
    """Value type of a rule-type custom field."""

    STRING = "string"
    ICD_CODE = "icdCode"


class FormFieldType(str, Enum):
    """Widget used to render a custom field."""

    TEXT = "text"
    ICD_CODE = "icdCode"


class RowStatus(str, Enum):
    """Outcome of a single mass-import row."""

    CREATED = "created"
    DUPLICATE = "duplicate"
    INVALID = "invalid"
    FAILED = "failed"
