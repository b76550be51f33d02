"""Tests for all API routes via FastAPI TestClient."""

from collections.abc import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.errors import install_error_handlers
from app.routes import clients, mass_entry, rule_types, rules
from db.connection import get_db, seed_global_client
from db.models import Base


def _create_test_app() -> FastAPI:
    """Minimal app without lifespan (no schema init)."""
    test_app: FastAPI = FastAPI()
    install_error_handlers(test_app)

    @test_app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    test_app.include_router(clients.router)
    test_app.include_router(rule_types.router)
    test_app.include_router(rules.router)
    test_app.include_router(mass_entry.router)
    return test_app


_test_app: FastAPI = _create_test_app()


@pytest.fixture()
def _route_engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine with check_same_thread=False for TestClient."""
    eng: Engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def _route_session(_route_engine: Engine) -> Generator[Session, None, None]:
    factory: sessionmaker[Session] = sessionmaker(
        bind=_route_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    sess: Session = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture()
def client(_route_session: Session) -> Generator[TestClient, None, None]:
    """TestClient with DB dependency overridden to use test session."""

    def _override_db() -> Generator[Session, None, None]:
        yield _route_session

    _test_app.dependency_overrides[get_db] = _override_db
    with TestClient(_test_app, raise_server_exceptions=True) as c:
        yield c
    _test_app.dependency_overrides.clear()


@pytest.fixture()
def session(_route_session: Session) -> Session:
    """Alias so seed helpers can use the same session as the client."""
    return _route_session


# ---------- seed helpers ----------


def _create_rule_type(client: TestClient, name: str = "Phrase Match") -> dict:
    resp = client.post(
        "/api/ruletypes",
        json={
            "name": name,
            "customFields": [
                {"label": "Phrase Text", "type": "string", "required": True},
                {"key": "icd", "label": "Diagnosis", "type": "icdCode"},
            ],
        },
    )
    assert resp.status_code == 200
    return resp.json()


def _create_rule(client: TestClient, ruletype_id: int, phrase: str, **extra: object) -> dict:
    resp = client.post(
        "/api/rules",
        json={"project_id": 1, "ruletype_id": ruletype_id, "inputs": {"phrase_text": phrase}},
        params=extra,
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


# ===================================================================
# Health
# ===================================================================


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_app_factory_registers_typed_responses(self) -> None:
        from app.main import create_app

        paths = {route.path for route in create_app().routes}  # type: ignore[attr-defined]
        assert {"/health/db", "/api/rules/check-duplicate", "/api/mass-entry"} <= paths


# ===================================================================
# Clients
# ===================================================================


class TestClientRoutes:
    def test_lists_seeded_global_client(self, client: TestClient, session: Session) -> None:
        seed_global_client(session)
        resp = client.get("/api/clients")
        assert resp.status_code == 200
        assert resp.json() == [{"client_id": 1, "client_name": "Global", "project_id": 999}]

    def test_create(self, client: TestClient) -> None:
        resp = client.post("/api/clients", json={"clientName": "Acme", "projectId": 7})
        assert resp.status_code == 200
        assert resp.json()["project_id"] == 7

    def test_duplicate_project_is_400(self, client: TestClient) -> None:
        client.post("/api/clients", json={"client_name": "Acme", "project_id": 7})
        resp = client.post("/api/clients", json={"client_name": "Other", "project_id": 7})
        assert resp.status_code == 400
        assert resp.json()["type"] == "PolicyValidationError"


# ===================================================================
# Rule types
# ===================================================================


class TestRuleTypeRoutes:
    def test_create_and_list(self, client: TestClient) -> None:
        created = _create_rule_type(client)
        assert [f["key"] for f in created["customFields"]] == ["phrase_text", "icd"]
        assert created["rule_count"] == 0
        assert created["deletable"] is True

        resp = client.get("/api/ruletypes")
        assert [rt["name"] for rt in resp.json()] == ["Phrase Match"]

    def test_validation_errors(self, client: TestClient) -> None:
        resp = client.post("/api/ruletypes", json={"name": "Empty", "customFields": []})
        assert resp.status_code == 400
        assert "customFields" in resp.json()["errors"]

        _create_rule_type(client)
        resp = client.post(
            "/api/ruletypes", json={"name": "Phrase Match", "customFields": [{"label": "X"}]}
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Rule type name must be unique"

    def test_form(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        resp = client.get(f"/api/ruletypes/{rt['ruletype_id']}/form")
        assert resp.status_code == 200
        form = resp.json()
        assert form["defaultInputs"] == {"phrase_text": "", "icd": ""}
        assert form["fields"][0]["placeholder"] == "Enter phrase text"
        assert form["validation"] == {"phrase_text": {"required": True}}

    def test_missing_is_404(self, client: TestClient) -> None:
        assert client.get("/api/ruletypes/404").status_code == 404
        assert client.delete("/api/ruletypes/404").status_code == 404

    def test_delete_unused(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        resp = client.delete(f"/api/ruletypes/{rt['ruletype_id']}")
        assert resp.status_code == 200
        assert client.get("/api/ruletypes").json() == []

    def test_delete_in_use_is_409(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        _create_rule(client, rt["ruletype_id"], "fever")
        resp = client.delete(f"/api/ruletypes/{rt['ruletype_id']}")
        assert resp.status_code == 409
        body = resp.json()
        assert body["type"] == "ReferentialIntegrityError"
        assert body["rule_count"] == 1
        assert client.get(f"/api/ruletypes/{rt['ruletype_id']}").json()["deletable"] is False


# ===================================================================
# Rules
# ===================================================================


class TestRuleRoutes:
    def test_create_and_get(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        rule = _create_rule(client, rt["ruletype_id"], "fever")
        assert rule["version"] == 1
        assert rule["category_id"] == 71
        assert rule["statement"] == "Phrase Match: Phrase Text: fever | Diagnosis: "

        resp = client.get(f"/api/rules/{rule['rule_id']}")
        assert resp.json()["inputs"] == {"phrase_text": "fever", "icd": ""}

    def test_list_includes_global(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        client.post(
            "/api/rules",
            json={"project_id": 999, "ruletype_id": rt["ruletype_id"], "inputs": {"phrase_text": "g"}},
        )
        _create_rule(client, rt["ruletype_id"], "own")
        resp = client.get("/api/rules", params={"project_id": 1})
        assert sorted(r["project_id"] for r in resp.json()) == [1, 999]

    def test_missing_required_is_400(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        resp = client.post(
            "/api/rules", json={"project_id": 1, "ruletype_id": rt["ruletype_id"], "inputs": {}}
        )
        assert resp.status_code == 400
        assert resp.json()["errors"] == {"phrase_text": "phrase_text is required"}

    def test_duplicate_is_409_unless_allowed(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        first = _create_rule(client, rt["ruletype_id"], "fever")
        resp = client.post(
            "/api/rules",
            json={"project_id": 1, "ruletype_id": rt["ruletype_id"], "inputs": {"phrase_text": "fever"}},
        )
        assert resp.status_code == 409
        assert resp.json()["duplicate"]["rule_id"] == first["rule_id"]

        second = _create_rule(client, rt["ruletype_id"], "fever", allow_duplicate="true")
        assert second["rule_id"] != first["rule_id"]

    def test_dates_stored_as_iso(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        resp = client.post(
            "/api/rules",
            json={
                "projectId": 1,
                "ruletypeId": rt["ruletype_id"],
                "inputs": {"phrase_text": "x"},
                "validFrom": "2026-01-01",
            },
        )
        assert resp.status_code == 200
        assert resp.json()["valid_from"] == "2026-01-01"

    def test_preview(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        resp = client.post(
            "/api/rules/preview",
            json={"ruletype_id": rt["ruletype_id"], "inputs": {"phrase_text": "a", "icd": "a10"}},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["statement"] == "Phrase Match: Phrase Text: a | Diagnosis: a10"
        assert body["errors"] == {}
        assert "icd" in body["warnings"]

    def test_check_duplicate(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        first = _create_rule(client, rt["ruletype_id"], "fever")
        payload = {"project_id": 1, "ruletype_id": rt["ruletype_id"], "inputs": {"phrase_text": "fever"}}
        body = client.post("/api/rules/check-duplicate", json=payload).json()
        assert body["is_duplicate"] is True
        assert body["duplicate_rule"]["rule_id"] == first["rule_id"]

        payload["inputs"] = {"phrase_text": "fever", "extra": ""}
        body = client.post("/api/rules/check-duplicate", json=payload).json()
        assert body == {"is_duplicate": False, "duplicate_rule": None}

    def test_update_and_versions(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        rule = _create_rule(client, rt["ruletype_id"], "fever")
        resp = client.put(
            f"/api/rules/{rule['rule_id']}",
            json={"inputs": {"phrase_text": "cough"}, "rule_description": "updated"},
        )
        assert resp.status_code == 200
        updated = resp.json()
        assert updated["version"] == 2
        assert updated["statement"] == "Phrase Match: Phrase Text: cough | Diagnosis: "
        assert updated["rule_description"] == "updated"

        history = client.get(f"/api/rules/{rule['rule_id']}/versions").json()
        assert [v["version"] for v in history] == [1]
        assert history[0]["data"]["inputs"]["phrase_text"] == "fever"

    def test_update_rule_type_rejected(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        rule = _create_rule(client, rt["ruletype_id"], "fever")
        resp = client.put(f"/api/rules/{rule['rule_id']}", json={"ruletype_id": 12345})
        assert resp.status_code == 400

    def test_delete(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        rule = _create_rule(client, rt["ruletype_id"], "fever")
        assert client.delete(f"/api/rules/{rule['rule_id']}").status_code == 200
        assert client.get(f"/api/rules/{rule['rule_id']}").status_code == 404


# ===================================================================
# Mass entry
# ===================================================================


class TestMassEntryRoutes:
    def test_parse(self, client: TestClient) -> None:
        resp = client.post("/api/mass-entry/parse", json={"content": "a\tb\n1\t2\n\n"})
        assert resp.status_code == 200
        assert resp.json() == {"headers": ["a", "b"], "rows": [{"a": "1", "b": "2"}], "notice": None}

    def test_parse_file_bad_encoding(self, client: TestClient) -> None:
        resp = client.post("/api/mass-entry/parse-file", content=b"\xff\xfe\x00")
        assert resp.status_code == 200
        body = resp.json()
        assert body["rows"] == []
        assert body["notice"]

    def test_import(self, client: TestClient) -> None:
        rt = _create_rule_type(client)
        resp = client.post(
            "/api/mass-entry",
            json={
                "content": "Phrase Text,Diagnosis\nfever,R50.9\n,A10\nfever,R50.9\n",
                "projectId": 1,
                "ruletypeId": rt["ruletype_id"],
            },
        )
        assert resp.status_code == 200
        summary = resp.json()
        assert summary["total"] == 3
        assert (summary["created"], summary["invalid"], summary["duplicates"]) == (1, 1, 1)
        assert len(client.get("/api/rules", params={"project_id": 1}).json()) == 1
