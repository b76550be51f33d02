"""Shared exception hierarchy for policyhub services."""

from collections.abc import Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from policyhub.services.schemas.domain import Rule


class PolicyError(Exception):
    """Base exception for policy authoring errors."""


# ── Validation ────────────────────────────────────────────────────────────────


class PolicyValidationError(PolicyError):
    """Input rejected before anything was committed.

    ``errors`` maps a field key (or ``"name"``, ``"customFields"``, ``"ruletype_id"``)
    to a human-readable message.
    """

    def __init__(self, message: str, errors: Mapping[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors: dict[str, str] = dict(errors or {})


class NotFoundError(PolicyError):
    """Requested client, rule type or rule does not exist."""


# ── Store invariants ──────────────────────────────────────────────────────────


class ReferentialIntegrityError(PolicyError):
    """Rule type is still referenced by rules."""

    def __init__(self, ruletype_id: int, rule_count: int) -> None:
        super().__init__(
            f"Rule type {ruletype_id} is referenced by {rule_count} rule(s) and cannot be deleted"
        )
        self.ruletype_id = ruletype_id
        self.rule_count = rule_count


class DuplicateRuleError(PolicyError):
    """A rule with the same type and inputs already exists."""

    def __init__(self, duplicate: "Rule") -> None:
        super().__init__(f"Duplicate of existing rule {duplicate.rule_id}")
        self.duplicate = duplicate


# ── Transport ─────────────────────────────────────────────────────────────────


class TransportError(PolicyError):
    """Remote store unreachable or returned a non-success response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ── Parsing ───────────────────────────────────────────────────────────────────


class TableParseError(PolicyError):
    """Delimited file could not be read."""
