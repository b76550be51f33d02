"""Rule endpoints."""

from fastapi import APIRouter, Depends

from app.dependencies import get_authoring
from app.schemas.rules import DuplicateCheckRequest, PreviewRequest, RuleCreate, RuleUpdate
from policyhub.services._types import DuplicateCheckDict
from policyhub.services.authoring import RuleAuthoringService

router = APIRouter(prefix="/api", tags=["rules"])


@router.get("/rules")
def list_rules(
    project_id: int,
    ruletype_id: int | None = None,
    svc: RuleAuthoringService = Depends(get_authoring),
):
    """Rules of the project plus every global rule."""
    return [r.to_dict() for r in svc.store.list_rules(project_id, ruletype_id)]


@router.post("/rules/preview")
def preview_rule(body: PreviewRequest, svc: RuleAuthoringService = Depends(get_authoring)):
    return svc.preview(body.ruletype_id, body.inputs)


@router.post("/rules/check-duplicate")
def check_duplicate(
    body: DuplicateCheckRequest, svc: RuleAuthoringService = Depends(get_authoring)
) -> DuplicateCheckDict:
    dup = svc.check_duplicate(body.project_id, body.ruletype_id, body.inputs)
    return DuplicateCheckDict(
        is_duplicate=dup is not None,
        duplicate_rule=dup.to_dict() if dup is not None else None,
    )


@router.post("/rules")
def create_rule(
    body: RuleCreate,
    allow_duplicate: bool = False,
    svc: RuleAuthoringService = Depends(get_authoring),
):
    return svc.create_rule(body.to_draft(), allow_duplicate=allow_duplicate).to_dict()


@router.get("/rules/{rule_id}")
def get_rule(rule_id: str, svc: RuleAuthoringService = Depends(get_authoring)):
    return svc.store.get_rule(rule_id).to_dict()


@router.put("/rules/{rule_id}")
def update_rule(
    rule_id: str, body: RuleUpdate, svc: RuleAuthoringService = Depends(get_authoring)
):
    return svc.update_rule_fields(rule_id, body.changes()).to_dict()


@router.delete("/rules/{rule_id}")
def delete_rule(rule_id: str, svc: RuleAuthoringService = Depends(get_authoring)):
    svc.delete_rule(rule_id)
    return {"deleted": rule_id}


@router.get("/rules/{rule_id}/versions")
def list_rule_versions(rule_id: str, svc: RuleAuthoringService = Depends(get_authoring)):
    return [v.to_dict() for v in svc.store.list_rule_versions(rule_id)]
