"""RuleStore backed by a remote PolicyHub API over HTTP/JSON."""

import http.client
import json
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping

import structlog

from config import get_settings
from policyhub.services.errors import (
    DuplicateRuleError,
    NotFoundError,
    PolicyError,
    PolicyValidationError,
    ReferentialIntegrityError,
    TransportError,
)
from policyhub.services.schemas.domain import (
    Client,
    Rule,
    RuleDraft,
    RuleType,
    RuleTypeDraft,
    RuleVersion,
)

logger = structlog.get_logger(__name__)


def _error_from_response(status: int, body: Mapping[str, object]) -> PolicyError:
    """Map an error response from the API back onto the service exception it came from."""
    detail: str = str(body.get("detail") or f"HTTP {status}")
    kind: object = body.get("type")

    if status in (400, 422):
        raw_errors: object = body.get("errors")
        errors: dict[str, str] = (
            {str(k): str(v) for k, v in raw_errors.items()} if isinstance(raw_errors, dict) else {}
        )
        return PolicyValidationError(detail, errors)
    if status == 404:
        return NotFoundError(detail)
    if status == 409 and kind == "ReferentialIntegrityError":
        return ReferentialIntegrityError(
            int(str(body.get("ruletype_id") or 0)), int(str(body.get("rule_count") or 0))
        )
    if status == 409 and kind == "DuplicateRuleError" and isinstance(body.get("duplicate"), dict):
        return DuplicateRuleError(Rule.from_dict(body["duplicate"]))  # type: ignore[arg-type]
    return TransportError(detail, status_code=status)


class HttpRuleStore:
    """Talks to ``<base_url>/clients``, ``/ruletypes`` and ``/rules``.

    Every call is one blocking request; ``urlopen`` is safe to call from worker
    threads, so mass import may dispatch creates concurrently.
    """

    concurrent_writes = True

    def __init__(self, base_url: str | None = None, timeout: float | None = None) -> None:
        remote = get_settings().remote
        self.base_url: str = (base_url or remote.base_url).rstrip("/")
        self.timeout: float = timeout if timeout is not None else remote.timeout

    def _request(
        self,
        method: str,
        path: str,
        params: Mapping[str, object] | None = None,
        payload: object = None,
    ) -> object:
        url: str = f"{self.base_url}{path}"
        query = {k: v for k, v in (params or {}).items() if v is not None}
        if query:
            url = f"{url}?{urllib.parse.urlencode(query)}"

        data: bytes | None = None if payload is None else json.dumps(payload).encode()
        req = urllib.request.Request(url, data=data, method=method)
        req.add_header("Accept", "application/json")
        if data is not None:
            req.add_header("Content-Type", "application/json")

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw: str = resp.read().decode()
        except urllib.error.HTTPError as exc:
            try:
                body: object = json.loads(exc.read().decode() or "{}")
            except ValueError:
                body = {}
            logger.warning("Remote store rejected request", method=method, url=url, status=exc.code)
            raise _error_from_response(
                exc.code, body if isinstance(body, dict) else {"detail": str(body)}
            ) from exc
        except (OSError, http.client.HTTPException) as exc:
            logger.error("Remote store unreachable", method=method, url=url, error=str(exc))
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise TransportError(f"{method} {url} returned invalid JSON") from exc

    def _get_list(self, path: str, params: Mapping[str, object] | None = None) -> list[dict]:
        result = self._request("GET", path, params)
        if not isinstance(result, list):
            raise TransportError(f"GET {path} did not return a list")
        return [r for r in result if isinstance(r, dict)]

    def _get_dict(
        self,
        method: str,
        path: str,
        params: Mapping[str, object] | None = None,
        payload: object = None,
    ) -> dict:
        result = self._request(method, path, params, payload)
        if not isinstance(result, dict):
            raise TransportError(f"{method} {path} did not return an object")
        return result

    # -- clients -------------------------------------------------------------

    def list_clients(self) -> list[Client]:
        return [Client.from_dict(c) for c in self._get_list("/clients")]

    def create_client(self, client_name: str, project_id: int) -> Client:
        body = self._get_dict(
            "POST", "/clients", payload={"client_name": client_name, "project_id": project_id}
        )
        return Client.from_dict(body)

    # -- rule types ----------------------------------------------------------

    def list_rule_types(self) -> list[RuleType]:
        return [RuleType.from_dict(r) for r in self._get_list("/ruletypes")]

    def get_rule_type(self, ruletype_id: int) -> RuleType:
        return RuleType.from_dict(self._get_dict("GET", f"/ruletypes/{ruletype_id}"))

    def count_rules(self, ruletype_id: int) -> int:
        body = self._get_dict("GET", f"/ruletypes/{ruletype_id}")
        return int(body.get("rule_count") or 0)

    def create_rule_type(self, draft: RuleTypeDraft) -> RuleType:
        payload = {
            "name": draft.name,
            "customFields": [f.to_dict() for f in draft.custom_fields],
        }
        return RuleType.from_dict(self._get_dict("POST", "/ruletypes", payload=payload))

    def delete_rule_type(self, ruletype_id: int) -> None:
        self._request("DELETE", f"/ruletypes/{ruletype_id}")
        logger.info("Deleted remote rule type", ruletype_id=ruletype_id)

    # -- rules ---------------------------------------------------------------

    def list_rules(self, project_id: int, ruletype_id: int | None = None) -> list[Rule]:
        rows = self._get_list("/rules", {"project_id": project_id, "ruletype_id": ruletype_id})
        return [Rule.from_dict(r) for r in rows]

    def get_rule(self, rule_id: str) -> Rule:
        return Rule.from_dict(self._get_dict("GET", f"/rules/{rule_id}"))

    def create_rule(self, draft: RuleDraft) -> Rule:
        # Callers run the duplicate gate before reaching the store.
        payload = {
            "project_id": draft.project_id,
            "ruletype_id": draft.ruletype_id,
            "category_id": draft.category_id,
            "inputs": draft.inputs,
            "rule_description": draft.rule_description,
            "regex": draft.regex,
            "valid_from": draft.valid_from,
            "valid_till": draft.valid_till,
        }
        body = self._get_dict(
            "POST", "/rules", params={"allow_duplicate": "true"}, payload=payload
        )
        return Rule.from_dict(body)

    def update_rule(self, rule: Rule) -> Rule:
        body = self._get_dict("PUT", f"/rules/{rule.rule_id}", payload=rule.to_dict())
        return Rule.from_dict(body)

    def delete_rule(self, rule_id: str) -> None:
        self._request("DELETE", f"/rules/{rule_id}")
        logger.info("Deleted remote rule", rule_id=rule_id)

    def list_rule_versions(self, rule_id: str) -> list[RuleVersion]:
        return [RuleVersion.from_dict(v) for v in self._get_list(f"/rules/{rule_id}/versions")]
