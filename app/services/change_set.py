from enum import Enum
from typing import Any, Dict, Iterable, Mapping

from app.core.constants import BUYER_FIELDS

ChangeSet = Dict[str, Dict[str, Any]]

# Fields written to the audit trail; owner changes are admin-only but still audited
AUDITED_FIELDS = BUYER_FIELDS + ("owner_id",)


def _plain(value: Any) -> Any:
    """Return a JSON-friendly copy of a field value."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _tag_set(tags: Any) -> frozenset:
    return frozenset(tags or ())


def buyer_snapshot(buyer: Any) -> Dict[str, Any]:
    """Read the audited fields off a buyer model (or any attribute bag)."""
    return {name: _plain(getattr(buyer, name, None)) for name in AUDITED_FIELDS}


def compute_change_set(
    existing: Mapping[str, Any],
    proposed: Mapping[str, Any],
    fields: Iterable[str] = AUDITED_FIELDS,
) -> ChangeSet:
    """Return ``{field: {"old": ..., "new": ...}}`` for every changed field.

    Fields missing from *proposed* mean "no change requested", not
    "clear the value"; an explicit ``None`` does clear it.  Tags are
    compared as sets, so reordering them is not a change.
    """
    changes: ChangeSet = {}
    for name in fields:
        if name not in proposed:
            continue
        old = _plain(existing.get(name))
        new = _plain(proposed[name])
        if name == "tags":
            if _tag_set(old) == _tag_set(new):
                continue
        elif old == new:
            continue
        changes[name] = {"old": old, "new": new}
    return changes
