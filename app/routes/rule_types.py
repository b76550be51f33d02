"""Rule type (schema manager) endpoints."""

from fastapi import APIRouter, Depends

from app.dependencies import get_authoring
from app.schemas.rule_types import RuleTypeCreate
from policyhub.services.authoring import RuleAuthoringService

router = APIRouter(prefix="/api", tags=["rule-types"])


@router.get("/ruletypes")
def list_rule_types(svc: RuleAuthoringService = Depends(get_authoring)):
    return svc.list_rule_type_summaries()


@router.get("/ruletypes/{ruletype_id}")
def get_rule_type(ruletype_id: int, svc: RuleAuthoringService = Depends(get_authoring)):
    return svc.rule_type_summary(svc.store.get_rule_type(ruletype_id))


@router.get("/ruletypes/{ruletype_id}/form")
def get_rule_type_form(ruletype_id: int, svc: RuleAuthoringService = Depends(get_authoring)):
    return svc.form(ruletype_id)


@router.post("/ruletypes")
def create_rule_type(body: RuleTypeCreate, svc: RuleAuthoringService = Depends(get_authoring)):
    return svc.rule_type_summary(svc.create_rule_type(body.to_draft()))


@router.delete("/ruletypes/{ruletype_id}")
def delete_rule_type(ruletype_id: int, svc: RuleAuthoringService = Depends(get_authoring)):
    svc.delete_rule_type(ruletype_id)
    return {"deleted": ruletype_id}
