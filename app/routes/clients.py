"""Client endpoints."""

from fastapi import APIRouter, Depends

from app.dependencies import get_store
from app.schemas.clients import ClientCreate
from policyhub.services.store import SqlRuleStore

router = APIRouter(prefix="/api", tags=["clients"])


@router.get("/clients")
def list_clients(store: SqlRuleStore = Depends(get_store)):
    return [c.to_dict() for c in store.list_clients()]


@router.post("/clients")
def create_client(body: ClientCreate, store: SqlRuleStore = Depends(get_store)):
    return store.create_client(body.client_name, body.project_id).to_dict()
