"""Mass entry endpoints: parse a delimited file, then import its rows."""

from fastapi import APIRouter, Depends, Request

from app.dependencies import get_mass_import
from app.schemas.mass_entry import MassImportRequest, ParseRequest
from policyhub.services.mass_import import MassImportService

router = APIRouter(prefix="/api", tags=["mass-entry"])


@router.post("/mass-entry/parse")
def parse_content(body: ParseRequest, svc: MassImportService = Depends(get_mass_import)):
    return svc.parse(body.content).to_dict()


@router.post("/mass-entry/parse-file")
async def parse_file(request: Request, svc: MassImportService = Depends(get_mass_import)):
    """Parse a raw file body; undecodable bytes yield an empty table with a notice."""
    return svc.parse_bytes(await request.body()).to_dict()


@router.post("/mass-entry")
def import_rows(body: MassImportRequest, svc: MassImportService = Depends(get_mass_import)):
    result = svc.import_text(
        body.content,
        project_id=body.project_id,
        ruletype_id=body.ruletype_id,
        columns=body.columns,
        allow_duplicates=body.allow_duplicates,
        category_id=body.category_id,
    )
    return result.to_dict()
