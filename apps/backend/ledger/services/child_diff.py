"""
Child-row differ

Matches a desired child list against the rows already stored for a cluster:
desired items carrying a known id become updates, everything else becomes an
insert, and stored rows nobody referenced are deleted. This lets one PATCH
keep, edit, add and drop children at the same time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Iterable, Protocol, Sequence, TypeVar

from ..core.errors import ValidationError


class HasId(Protocol):
    id: str


class MaybeHasId(Protocol):
    id: str | None


R = TypeVar("R", bound=HasId)
D = TypeVar("D", bound=MaybeHasId)


@dataclass
class ChildDiff(Generic[R, D]):
    to_update: list[tuple[R, D]] = field(default_factory=list)
    to_insert: list[D] = field(default_factory=list)
    to_delete: list[R] = field(default_factory=list)


def diff_children(desired: Sequence[D], existing: Iterable[R]) -> ChildDiff[R, D]:
    """Compute updates/inserts/deletes for ``desired`` against ``existing``.

    Desired order is preserved in ``to_update``/``to_insert``; ``to_delete``
    keeps the order of ``existing``. An id referenced twice in ``desired`` is
    rejected rather than resolved silently.
    """
    existing_rows = list(existing)
    existing_by_id = {row.id: row for row in existing_rows}
    kept: set[str] = set()
    result: ChildDiff[R, D] = ChildDiff()

    for item in desired:
        row = existing_by_id.get(item.id) if item.id else None
        if row is None:
            result.to_insert.append(item)
            continue
        if row.id in kept:
            raise ValidationError(f"duplicate item id: {row.id}", code="duplicate_child_id")
        kept.add(row.id)
        result.to_update.append((row, item))

    result.to_delete = [row for row in existing_rows if row.id not in kept]
    return result
