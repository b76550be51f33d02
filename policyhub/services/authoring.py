"""Rule authoring: form resolution, preview, duplicate gate and persistence."""

from collections.abc import Mapping
from dataclasses import replace

import structlog

from policyhub.services._types import FormDict, PreviewDict, RuleTypeSummaryDict
from policyhub.services.duplicates import find_duplicate
from policyhub.services.errors import (
    DuplicateRuleError,
    NotFoundError,
    PolicyValidationError,
)
from policyhub.services.schema_resolver import build_form, default_inputs
from policyhub.services.schemas.domain import (
    InputValue,
    Rule,
    RuleDraft,
    RuleType,
    RuleTypeDraft,
)
from policyhub.services.statement import generate_statement
from policyhub.services.store import RuleStore
from policyhub.services.validators import validate_inputs

logger = structlog.get_logger(__name__)

# Rule attributes a caller may change through update_rule_fields.
EDITABLE_FIELDS: frozenset[str] = frozenset(
    {
        "project_id",
        "category_id",
        "inputs",
        "rule_description",
        "regex",
        "valid_from",
        "valid_till",
    }
)


class RuleAuthoringService:
    """Builds and saves rules for one RuleStore.

    Statements are always regenerated from the rule type and inputs; a statement
    supplied by the caller is ignored.
    """

    def __init__(self, store: RuleStore):
        self.store = store

    # -- rule types ----------------------------------------------------------

    def require_rule_type(self, ruletype_id: int) -> RuleType:
        """Rule type for a rule being authored; an unknown id is an input error."""
        try:
            return self.store.get_rule_type(ruletype_id)
        except NotFoundError as exc:
            raise PolicyValidationError(
                f"Rule type {ruletype_id} does not exist",
                {"ruletype_id": "unknown rule type"},
            ) from exc

    def rule_type_summary(self, rule_type: RuleType) -> RuleTypeSummaryDict:
        count: int = self.store.count_rules(rule_type.ruletype_id)
        return RuleTypeSummaryDict(
            **rule_type.to_dict(),
            rule_count=count,
            deletable=count == 0,
        )

    def list_rule_type_summaries(self) -> list[RuleTypeSummaryDict]:
        return [self.rule_type_summary(rt) for rt in self.store.list_rule_types()]

    def create_rule_type(self, draft: RuleTypeDraft) -> RuleType:
        return self.store.create_rule_type(draft)

    def delete_rule_type(self, ruletype_id: int) -> None:
        # Both stores reject a rule type that rules still reference.
        self.store.delete_rule_type(ruletype_id)

    def form(self, ruletype_id: int) -> FormDict:
        return build_form(self.store.get_rule_type(ruletype_id))

    # -- inputs --------------------------------------------------------------

    @staticmethod
    def build_inputs(
        rule_type: RuleType, provided: Mapping[str, InputValue] | None
    ) -> dict[str, InputValue]:
        """Defaults for every declared field, overlaid with what the caller supplied.

        Keys the rule type does not declare are kept as given.
        """
        inputs: dict[str, InputValue] = dict(default_inputs(rule_type))
        inputs.update(provided or {})
        return inputs

    def preview(self, ruletype_id: int, provided: Mapping[str, InputValue]) -> PreviewDict:
        rule_type: RuleType = self.require_rule_type(ruletype_id)
        inputs = self.build_inputs(rule_type, provided)
        report = validate_inputs(rule_type, inputs)
        return PreviewDict(
            statement=generate_statement(rule_type, inputs),
            errors=report.errors,
            warnings=report.warnings,
        )

    def check_duplicate(
        self,
        project_id: int,
        ruletype_id: int,
        provided: Mapping[str, InputValue],
    ) -> Rule | None:
        """First existing rule (project or global) structurally equal to the candidate."""
        rule_type: RuleType = self.require_rule_type(ruletype_id)
        inputs = self.build_inputs(rule_type, provided)
        return find_duplicate(self.store.list_rules(project_id, ruletype_id), ruletype_id, inputs)

    # -- rules ---------------------------------------------------------------

    def create_rule(self, draft: RuleDraft, allow_duplicate: bool = False) -> Rule:
        """Validate, generate the statement, apply the duplicate gate, then save.

        Raises:
            PolicyValidationError: unknown rule type or missing required inputs.
            DuplicateRuleError: an equal rule exists and ``allow_duplicate`` is False.
        """
        rule_type: RuleType = self.require_rule_type(draft.ruletype_id)
        inputs = self.build_inputs(rule_type, draft.inputs)

        report = validate_inputs(rule_type, inputs)
        if not report.ok:
            raise PolicyValidationError("Missing required fields", report.errors)
        if report.warnings:
            logger.info("Saving rule with ICD warnings", warnings=report.warnings)

        duplicate = find_duplicate(
            self.store.list_rules(draft.project_id, draft.ruletype_id), draft.ruletype_id, inputs
        )
        if duplicate is not None:
            if not allow_duplicate:
                logger.info("Blocked duplicate rule", duplicate_of=duplicate.rule_id)
                raise DuplicateRuleError(duplicate)
            logger.warning("Saving confirmed duplicate", duplicate_of=duplicate.rule_id)

        return self.store.create_rule(
            replace(draft, inputs=inputs, statement=generate_statement(rule_type, inputs))
        )

    def update_rule(self, rule: Rule) -> Rule:
        """Save an edited rule. The rule type is immutable; no duplicate gate applies."""
        current: Rule = self.store.get_rule(rule.rule_id)
        if rule.ruletype_id != current.ruletype_id:
            raise PolicyValidationError(
                "Rule type cannot change once a rule is created",
                {"ruletype_id": f"must remain {current.ruletype_id}"},
            )
        rule_type: RuleType = self.store.get_rule_type(current.ruletype_id)
        inputs = self.build_inputs(rule_type, rule.inputs)

        report = validate_inputs(rule_type, inputs)
        if not report.ok:
            raise PolicyValidationError("Missing required fields", report.errors)

        return self.store.update_rule(
            replace(rule, inputs=inputs, statement=generate_statement(rule_type, inputs))
        )

    def update_rule_fields(self, rule_id: str, changes: Mapping[str, object]) -> Rule:
        """Apply a partial edit on top of the stored rule."""
        current: Rule = self.store.get_rule(rule_id)
        if "ruletype_id" in changes and changes["ruletype_id"] != current.ruletype_id:
            raise PolicyValidationError(
                "Rule type cannot change once a rule is created",
                {"ruletype_id": f"must remain {current.ruletype_id}"},
            )
        edits = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        return self.update_rule(replace(current, **edits))  # type: ignore[arg-type]

    def delete_rule(self, rule_id: str) -> None:
        self.store.delete_rule(rule_id)
