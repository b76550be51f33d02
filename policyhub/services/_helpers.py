"""Shared utilities for the service layer."""

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from uuid import uuid4

# Every JSON TEXT column in this DB stores a dict.
JsonDict = dict[str, object]
Serializable = Mapping[str, object] | list[Mapping[str, object]]


def new_id() -> str:
    return str(uuid4())


def new_rule_id() -> str:
    return "rule_" + new_id()[:12]


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def load_json(raw: str | None) -> JsonDict | None:
    """Deserialize a JSON TEXT column. Always a dict or None in this codebase."""
    if not raw:
        return None
    result: object = json.loads(raw)
    if isinstance(result, dict):
        return dict(result)
    return None


def dump_json(obj: Serializable) -> str:
    return json.dumps(obj, default=str)


def stringify_value(value: object) -> str:
    """String form of an input value, shared by statements and duplicate checks.

    Booleans render as ``true``/``false`` and integral floats drop the ``.0`` so that
    ``1``, ``1.0`` and ``"1"`` all compare equal.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
