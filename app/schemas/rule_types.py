"""Rule type request schemas."""

from pydantic import Field

from app.schemas.common import CamelModel
from db.enums import FieldType
from policyhub.services.schemas import CustomField, RuleTypeDraft


class CustomFieldIn(CamelModel):
    key: str = Field("", description="Derived from the label when empty")
    label: str = ""
    type: FieldType = FieldType.STRING
    required: bool = False


class RuleTypeCreate(CamelModel):
    name: str = Field("", max_length=128)
    custom_fields: list[CustomFieldIn] = Field(default_factory=list)

    def to_draft(self) -> RuleTypeDraft:
        return RuleTypeDraft(
            name=self.name,
            custom_fields=[
                CustomField(key=f.key, label=f.label, type=f.type, required=f.required)
                for f in self.custom_fields
            ],
        )
