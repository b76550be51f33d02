"""FastAPI dependencies: DB sessions and services."""

from fastapi import Depends
from sqlalchemy.orm import Session

from db.connection import get_db as get_db  # noqa: F401 (re-exported for routes)
from policyhub.services.authoring import RuleAuthoringService
from policyhub.services.mass_import import MassImportService
from policyhub.services.store import SqlRuleStore


def get_store(db: Session = Depends(get_db)) -> SqlRuleStore:
    return SqlRuleStore(db, changed_by="api")


def get_authoring(store: SqlRuleStore = Depends(get_store)) -> RuleAuthoringService:
    return RuleAuthoringService(store)


def get_mass_import(store: SqlRuleStore = Depends(get_store)) -> MassImportService:
    return MassImportService(store)
