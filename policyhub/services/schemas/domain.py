"""Domain value objects shared by the store, the engine and the API."""

from collections.abc import Mapping
from dataclasses import dataclass, field

from db.enums import FieldType, FormFieldType
from policyhub.services._types import (
    ClientDict,
    CustomFieldDict,
    FieldConfigDict,
    ParsedTableDict,
    RuleDict,
    RuleTypeDict,
    RuleVersionDict,
)

InputValue = str | int | float | bool


def _opt_str(data: Mapping[str, object], key: str) -> str | None:
    raw: object = data.get(key)
    return None if raw is None else str(raw)


@dataclass
class Client:
    client_id: int
    client_name: str
    project_id: int

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Client":
        return cls(
            client_id=int(data["client_id"]),
            client_name=str(data["client_name"]),
            project_id=int(data["project_id"]),
        )

    def to_dict(self) -> ClientDict:
        return ClientDict(
            client_id=self.client_id,
            client_name=self.client_name,
            project_id=self.project_id,
        )


@dataclass
class CustomField:
    key: str
    label: str
    type: FieldType = FieldType.STRING
    required: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "CustomField":
        try:
            field_type = FieldType(str(data.get("type") or FieldType.STRING.value))
        except ValueError:
            field_type = FieldType.STRING
        return cls(
            key=str(data.get("key") or ""),
            label=str(data.get("label") or ""),
            type=field_type,
            required=bool(data.get("required", False)),
        )

    def to_dict(self) -> CustomFieldDict:
        return CustomFieldDict(
            key=self.key,
            label=self.label,
            type=self.type.value,
            required=self.required,
        )


def _fields_from(data: Mapping[str, object]) -> list[CustomField]:
    raw: object = data.get("customFields", data.get("custom_fields"))
    if not isinstance(raw, list):
        return []
    return [CustomField.from_dict(f) for f in raw if isinstance(f, Mapping)]


@dataclass
class RuleTypeDraft:
    """A rule type that has not been assigned an id yet."""

    name: str
    custom_fields: list[CustomField] = field(default_factory=list)


@dataclass
class RuleType:
    ruletype_id: int
    name: str
    custom_fields: list[CustomField] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "RuleType":
        return cls(
            ruletype_id=int(data["ruletype_id"]),
            name=str(data["name"]),
            custom_fields=_fields_from(data),
        )

    def to_dict(self) -> RuleTypeDict:
        return RuleTypeDict(
            ruletype_id=self.ruletype_id,
            name=self.name,
            customFields=[f.to_dict() for f in self.custom_fields],
        )


@dataclass
class RuleDraft:
    """A rule that has not been assigned an id yet."""

    project_id: int
    ruletype_id: int
    inputs: dict[str, InputValue] = field(default_factory=dict)
    category_id: int | None = None
    statement: str | None = None
    rule_description: str | None = None
    regex: str | None = None
    valid_from: str | None = None
    valid_till: str | None = None


@dataclass
class Rule:
    rule_id: str
    project_id: int
    category_id: int
    ruletype_id: int
    inputs: dict[str, InputValue] = field(default_factory=dict)
    statement: str | None = None
    rule_description: str | None = None
    regex: str | None = None
    valid_from: str | None = None
    valid_till: str | None = None
    version: int = 1
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Rule":
        raw_inputs: object = data.get("inputs")
        inputs: dict[str, InputValue] = (
            {str(k): v for k, v in raw_inputs.items()} if isinstance(raw_inputs, Mapping) else {}
        )
        return cls(
            rule_id=str(data["rule_id"]),
            project_id=int(data["project_id"]),
            category_id=int(data.get("category_id") or 0),
            ruletype_id=int(data["ruletype_id"]),
            inputs=inputs,
            statement=_opt_str(data, "statement"),
            rule_description=_opt_str(data, "rule_description"),
            regex=_opt_str(data, "regex"),
            valid_from=_opt_str(data, "valid_from"),
            valid_till=_opt_str(data, "valid_till"),
            version=int(data.get("version") or 1),
            created_at=_opt_str(data, "created_at"),
            updated_at=_opt_str(data, "updated_at"),
        )

    def to_dict(self) -> RuleDict:
        return RuleDict(
            rule_id=self.rule_id,
            project_id=self.project_id,
            category_id=self.category_id,
            ruletype_id=self.ruletype_id,
            inputs=dict(self.inputs),
            statement=self.statement,
            rule_description=self.rule_description,
            regex=self.regex,
            valid_from=self.valid_from,
            valid_till=self.valid_till,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass
class RuleVersion:
    """Snapshot of a rule as it was before an update."""

    version_id: int
    rule_id: str
    version: int
    data: Rule
    changed_by: str
    changed_at: str

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "RuleVersion":
        snapshot: object = data.get("data")
        return cls(
            version_id=int(data["version_id"]),
            rule_id=str(data["rule_id"]),
            version=int(data["version"]),
            data=Rule.from_dict(snapshot if isinstance(snapshot, Mapping) else {}),
            changed_by=str(data.get("changed_by") or "system"),
            changed_at=str(data.get("changed_at") or ""),
        )

    def to_dict(self) -> RuleVersionDict:
        return RuleVersionDict(
            version_id=self.version_id,
            rule_id=self.rule_id,
            version=self.version,
            data=self.data.to_dict(),
            changed_by=self.changed_by,
            changed_at=self.changed_at,
        )


@dataclass
class FieldConfig:
    field_type: FormFieldType
    label: str
    placeholder: str
    key: str
    required: bool

    def to_dict(self) -> FieldConfigDict:
        return FieldConfigDict(
            fieldType=self.field_type.value,
            label=self.label,
            placeholder=self.placeholder,
            key=self.key,
            required=self.required,
        )


@dataclass
class ParsedTable:
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)
    notice: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def to_dict(self) -> ParsedTableDict:
        return ParsedTableDict(
            headers=list(self.headers),
            rows=[dict(r) for r in self.rows],
            notice=self.notice,
        )
