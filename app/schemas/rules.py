"""Rule request schemas."""

from datetime import date

from pydantic import Field

from app.schemas.common import CamelModel
from policyhub.services.schemas import InputValue, RuleDraft

# Columns that cannot be cleared by sending null.
_NOT_NULLABLE = ("project_id", "category_id", "ruletype_id", "inputs")


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


class RuleCreate(CamelModel):
    project_id: int
    ruletype_id: int
    inputs: dict[str, InputValue] = Field(default_factory=dict)
    category_id: int | None = None
    rule_description: str | None = None
    regex: str | None = None
    valid_from: date | None = None
    valid_till: date | None = None

    def to_draft(self) -> RuleDraft:
        return RuleDraft(
            project_id=self.project_id,
            ruletype_id=self.ruletype_id,
            inputs=dict(self.inputs),
            category_id=self.category_id,
            rule_description=self.rule_description,
            regex=self.regex,
            valid_from=_iso(self.valid_from),
            valid_till=_iso(self.valid_till),
        )


class RuleUpdate(CamelModel):
    """Partial edit; only the fields present in the request are applied."""

    project_id: int | None = None
    ruletype_id: int | None = None
    inputs: dict[str, InputValue] | None = None
    category_id: int | None = None
    rule_description: str | None = None
    regex: str | None = None
    valid_from: date | None = None
    valid_till: date | None = None

    def changes(self) -> dict[str, object]:
        sent: dict[str, object] = self.model_dump(exclude_unset=True)
        for key in ("valid_from", "valid_till"):
            if key in sent:
                sent[key] = _iso(getattr(self, key))
        return {k: v for k, v in sent.items() if v is not None or k not in _NOT_NULLABLE}


class PreviewRequest(CamelModel):
    ruletype_id: int
    inputs: dict[str, InputValue] = Field(default_factory=dict)


class DuplicateCheckRequest(CamelModel):
    project_id: int
    ruletype_id: int
    inputs: dict[str, InputValue] = Field(default_factory=dict)
