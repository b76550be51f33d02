"""Structural duplicate detection between rules."""

from collections.abc import Iterable, Mapping

from policyhub.services._helpers import stringify_value
from policyhub.services.schemas.domain import Rule


def inputs_equal(existing: Mapping[str, object], candidate: Mapping[str, object]) -> bool:
    """Same key count and every candidate value equal by string form.

    Key counts must match exactly, so a candidate carrying one extra key (even an
    empty one) is never equal to an otherwise identical rule.
    """
    if len(existing) != len(candidate):
        return False
    return all(
        key in existing and stringify_value(existing[key]) == stringify_value(value)
        for key, value in candidate.items()
    )


def find_duplicate(
    existing_rules: Iterable[Rule],
    ruletype_id: int,
    candidate_inputs: Mapping[str, object],
) -> Rule | None:
    """First rule of the same type whose inputs equal the candidate's, in iteration order."""
    for rule in existing_rules:
        if rule.ruletype_id == ruletype_id and inputs_equal(rule.inputs, candidate_inputs):
            return rule
    return None
