"""Shared fixtures: in-memory SQLite DB with all tables, plus a stored rule type."""

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.enums import FieldType
from db.models import Base
from policyhub.services.schemas import CustomField, RuleType, RuleTypeDraft
from policyhub.services.store import SqlRuleStore


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    eng: Engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine: Engine) -> Generator[Session, None, None]:
    factory: sessionmaker[Session] = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    sess: Session = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture()
def store(session: Session) -> SqlRuleStore:
    return SqlRuleStore(session)


def phrase_draft(name: str = "Phrase Match") -> RuleTypeDraft:
    """Two-field rule type: a required phrase and an optional ICD code."""
    return RuleTypeDraft(
        name=name,
        custom_fields=[
            CustomField(key="", label="Phrase Text", required=True),
            CustomField(key="icd", label="Diagnosis", type=FieldType.ICD_CODE),
        ],
    )


@pytest.fixture()
def phrase_type(store: SqlRuleStore) -> RuleType:
    return store.create_rule_type(phrase_draft())


@pytest.fixture()
def empty_type() -> RuleType:
    return RuleType(ruletype_id=1, name="Empty", custom_fields=[])
