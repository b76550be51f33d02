"""Mass entry request schemas."""

from pydantic import Field

from app.schemas.common import CamelModel


class ParseRequest(CamelModel):
    content: str = ""


class MassImportRequest(CamelModel):
    content: str = ""
    project_id: int
    ruletype_id: int
    columns: list[str] | None = Field(None, description="Defaults to every header")
    allow_duplicates: bool = False
    category_id: int | None = None
