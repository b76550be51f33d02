"""Client request schemas."""

from pydantic import Field

from app.schemas.common import CamelModel


class ClientCreate(CamelModel):
    client_name: str = Field(..., max_length=128)
    project_id: int = Field(..., ge=0)
