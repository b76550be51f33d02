"""Rule/RuleType aggregate store.

``RuleStore`` is the boundary every caller codes against; ``SqlRuleStore`` is the
session-backed implementation that owns the invariants (unique rule-type names,
non-empty field lists, referential integrity on delete, immutable rule types,
monotonic rule versions). ``HttpRuleStore`` in ``http_store`` talks to a remote
instance of the same API.
"""

from collections import Counter
from typing import Protocol

import structlog
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from config import get_settings
from db.models import Clients, Rules, RuleTypes, RuleVersions
from policyhub.services._helpers import (
    JsonDict,
    dump_json,
    load_json,
    new_rule_id,
    now_iso,
)
from policyhub.services.errors import (
    NotFoundError,
    PolicyValidationError,
    ReferentialIntegrityError,
)
from policyhub.services.schema_resolver import normalize_field
from policyhub.services.schemas.domain import (
    Client,
    CustomField,
    Rule,
    RuleDraft,
    RuleType,
    RuleTypeDraft,
    RuleVersion,
)

logger = structlog.get_logger(__name__)


class RuleStore(Protocol):
    """Request/response contract for clients, rule types and rules."""

    # True when create_rule may be called from several threads at once.
    concurrent_writes: bool

    def list_clients(self) -> list[Client]: ...

    def create_client(self, client_name: str, project_id: int) -> Client: ...

    def list_rule_types(self) -> list[RuleType]: ...

    def get_rule_type(self, ruletype_id: int) -> RuleType: ...

    def count_rules(self, ruletype_id: int) -> int: ...

    def create_rule_type(self, draft: RuleTypeDraft) -> RuleType: ...

    def delete_rule_type(self, ruletype_id: int) -> None: ...

    def list_rules(self, project_id: int, ruletype_id: int | None = None) -> list[Rule]: ...

    def get_rule(self, rule_id: str) -> Rule: ...

    def create_rule(self, draft: RuleDraft) -> Rule: ...

    def update_rule(self, rule: Rule) -> Rule: ...

    def delete_rule(self, rule_id: str) -> None: ...

    def list_rule_versions(self, rule_id: str) -> list[RuleVersion]: ...


def prepare_rule_type(draft: RuleTypeDraft, existing_names: set[str]) -> RuleTypeDraft:
    """Validate a new rule type and fill in derived field keys.

    Names and labels are trimmed; name uniqueness is case-sensitive.
    """
    name: str = draft.name.strip()
    if not name:
        raise PolicyValidationError("Rule type name is required", {"name": "required"})
    if name in existing_names:
        raise PolicyValidationError(
            "Rule type name must be unique", {"name": f"'{name}' already exists"}
        )
    if not draft.custom_fields:
        raise PolicyValidationError(
            "At least one field is required", {"customFields": "at least one field is required"}
        )
    if any(not f.label.strip() for f in draft.custom_fields):
        raise PolicyValidationError(
            "All fields must have labels", {"customFields": "all fields must have labels"}
        )

    fields: list[CustomField] = [
        normalize_field(
            CustomField(key=f.key, label=f.label.strip(), type=f.type, required=f.required)
        )
        for f in draft.custom_fields
    ]
    clashes: list[str] = [k for k, n in Counter(f.key for f in fields).items() if n > 1]
    if clashes:
        logger.warning("Rule type has repeated field keys", name=name, keys=clashes)
    return RuleTypeDraft(name=name, custom_fields=fields)


def _client_from_row(row: Clients) -> Client:
    return Client(client_id=row.client_id, client_name=row.client_name, project_id=row.project_id)


def _rule_type_from_row(row: RuleTypes) -> RuleType:
    payload: JsonDict = load_json(row.custom_fields) or {}
    raw_fields: object = payload.get("fields")
    fields: list[CustomField] = (
        [CustomField.from_dict(f) for f in raw_fields if isinstance(f, dict)]
        if isinstance(raw_fields, list)
        else []
    )
    return RuleType(ruletype_id=row.ruletype_id, name=row.name, custom_fields=fields)


def _rule_from_row(row: Rules) -> Rule:
    return Rule(
        rule_id=row.rule_id,
        project_id=row.project_id,
        category_id=row.category_id,
        ruletype_id=row.ruletype_id,
        inputs=load_json(row.inputs) or {},
        statement=row.statement,
        rule_description=row.rule_description,
        regex=row.regex,
        valid_from=row.valid_from,
        valid_till=row.valid_till,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _version_from_row(row: RuleVersions) -> RuleVersion:
    return RuleVersion(
        version_id=row.version_id,
        rule_id=row.rule_id,
        version=row.version,
        data=Rule.from_dict(load_json(row.data) or {}),
        changed_by=row.changed_by,
        changed_at=row.changed_at,
    )


class SqlRuleStore:
    """Session-backed store. Flushes, never commits; the caller owns the transaction."""

    concurrent_writes = False

    def __init__(self, session: Session, changed_by: str = "system") -> None:
        settings = get_settings()
        self.session: Session = session
        self.changed_by: str = changed_by
        self.global_project_id: int = settings.global_project_id
        self.default_category_id: int = settings.default_category_id

    # -- clients -------------------------------------------------------------

    def list_clients(self) -> list[Client]:
        stmt: Select[tuple[Clients]] = select(Clients).order_by(Clients.client_id)
        return [_client_from_row(c) for c in self.session.scalars(stmt).all()]

    def create_client(self, client_name: str, project_id: int) -> Client:
        name: str = client_name.strip()
        if not name:
            raise PolicyValidationError("Client name is required", {"client_name": "required"})
        taken = self.session.scalar(select(Clients).where(Clients.project_id == project_id))
        if taken is not None:
            raise PolicyValidationError(
                f"Project {project_id} already belongs to {taken.client_name}",
                {"project_id": "already assigned"},
            )
        row: Clients = Clients(client_name=name, project_id=project_id)
        self.session.add(row)
        self.session.flush()
        logger.info("Created client", client_id=row.client_id, project_id=project_id)
        return _client_from_row(row)

    # -- rule types ----------------------------------------------------------

    def _get_rule_type_row(self, ruletype_id: int) -> RuleTypes:
        row: RuleTypes | None = self.session.get(RuleTypes, ruletype_id)
        if row is None:
            raise NotFoundError(f"Rule type {ruletype_id} not found")
        return row

    def list_rule_types(self) -> list[RuleType]:
        stmt: Select[tuple[RuleTypes]] = select(RuleTypes).order_by(RuleTypes.ruletype_id)
        return [_rule_type_from_row(r) for r in self.session.scalars(stmt).all()]

    def get_rule_type(self, ruletype_id: int) -> RuleType:
        return _rule_type_from_row(self._get_rule_type_row(ruletype_id))

    def count_rules(self, ruletype_id: int) -> int:
        stmt = select(func.count()).select_from(Rules).where(Rules.ruletype_id == ruletype_id)
        return self.session.scalar(stmt) or 0

    def create_rule_type(self, draft: RuleTypeDraft) -> RuleType:
        names: set[str] = set(self.session.scalars(select(RuleTypes.name)).all())
        prepared: RuleTypeDraft = prepare_rule_type(draft, names)
        row: RuleTypes = RuleTypes(
            name=prepared.name,
            custom_fields=dump_json({"fields": [f.to_dict() for f in prepared.custom_fields]}),
            created_at=now_iso(),
        )
        self.session.add(row)
        self.session.flush()
        logger.info(
            "Created rule type",
            ruletype_id=row.ruletype_id,
            name=row.name,
            fields=len(prepared.custom_fields),
        )
        return _rule_type_from_row(row)

    def delete_rule_type(self, ruletype_id: int) -> None:
        row: RuleTypes = self._get_rule_type_row(ruletype_id)
        referencing: int = self.count_rules(ruletype_id)
        if referencing:
            logger.warning(
                "Rejected rule type delete", ruletype_id=ruletype_id, rule_count=referencing
            )
            raise ReferentialIntegrityError(ruletype_id, referencing)
        self.session.delete(row)
        self.session.flush()
        logger.info("Deleted rule type", ruletype_id=ruletype_id, name=row.name)

    # -- rules ---------------------------------------------------------------

    def _get_rule_row(self, rule_id: str) -> Rules:
        row: Rules | None = self.session.get(Rules, rule_id)
        if row is None:
            raise NotFoundError(f"Rule {rule_id} not found")
        return row

    def list_rules(self, project_id: int, ruletype_id: int | None = None) -> list[Rule]:
        """Rules of a project plus every global rule, oldest first."""
        projects: set[int] = {project_id, self.global_project_id}
        stmt: Select[tuple[Rules]] = select(Rules).where(Rules.project_id.in_(projects))
        if ruletype_id is not None:
            stmt = stmt.where(Rules.ruletype_id == ruletype_id)
        stmt = stmt.order_by(Rules.created_at, Rules.rule_id)
        return [_rule_from_row(r) for r in self.session.scalars(stmt).all()]

    def get_rule(self, rule_id: str) -> Rule:
        return _rule_from_row(self._get_rule_row(rule_id))

    def create_rule(self, draft: RuleDraft) -> Rule:
        if self.session.get(RuleTypes, draft.ruletype_id) is None:
            raise PolicyValidationError(
                f"Rule type {draft.ruletype_id} does not exist",
                {"ruletype_id": "unknown rule type"},
            )
        ts: str = now_iso()
        row: Rules = Rules(
            rule_id=new_rule_id(),
            project_id=draft.project_id,
            category_id=(
                draft.category_id if draft.category_id is not None else self.default_category_id
            ),
            ruletype_id=draft.ruletype_id,
            inputs=dump_json(draft.inputs),
            statement=draft.statement,
            rule_description=draft.rule_description,
            regex=draft.regex,
            valid_from=draft.valid_from,
            valid_till=draft.valid_till,
            version=1,
            created_at=ts,
            updated_at=ts,
        )
        self.session.add(row)
        self.session.flush()
        logger.info(
            "Created rule",
            rule_id=row.rule_id,
            project_id=row.project_id,
            ruletype_id=row.ruletype_id,
        )
        return _rule_from_row(row)

    def update_rule(self, rule: Rule) -> Rule:
        """Overwrite editable fields, snapshot the previous state and bump the version."""
        row: Rules = self._get_rule_row(rule.rule_id)
        if rule.ruletype_id != row.ruletype_id:
            raise PolicyValidationError(
                "Rule type cannot change once a rule is created",
                {"ruletype_id": f"must remain {row.ruletype_id}"},
            )

        ts: str = now_iso()
        row.versions.append(
            RuleVersions(
                version=row.version,
                data=dump_json(_rule_from_row(row).to_dict()),
                changed_by=self.changed_by,
                changed_at=ts,
            )
        )
        row.project_id = rule.project_id
        row.category_id = rule.category_id
        row.inputs = dump_json(rule.inputs)
        row.statement = rule.statement
        row.rule_description = rule.rule_description
        row.regex = rule.regex
        row.valid_from = rule.valid_from
        row.valid_till = rule.valid_till
        row.version = row.version + 1
        row.updated_at = ts
        self.session.flush()
        logger.info("Updated rule", rule_id=row.rule_id, version=row.version)
        return _rule_from_row(row)

    def delete_rule(self, rule_id: str) -> None:
        row: Rules = self._get_rule_row(rule_id)
        self.session.delete(row)
        self.session.flush()
        logger.info("Deleted rule", rule_id=rule_id)

    def list_rule_versions(self, rule_id: str) -> list[RuleVersion]:
        self._get_rule_row(rule_id)
        stmt: Select[tuple[RuleVersions]] = (
            select(RuleVersions)
            .where(RuleVersions.rule_id == rule_id)
            .order_by(RuleVersions.version)
        )
        return [_version_from_row(v) for v in self.session.scalars(stmt).all()]
