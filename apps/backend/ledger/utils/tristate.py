"""Three-state patch fields: omitted, explicitly null, or set to a value.

A PATCH body has to distinguish "field omitted → don't touch" from
"field is null → clear" from "field has a value → set". ``Optional[T]``
alone cannot express that, so payload fields are lifted into
``Unchanged | Cleared | Set[T]`` using pydantic's ``model_fields_set``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel


T = TypeVar("T")


@dataclass(frozen=True)
class Unchanged:
    pass


@dataclass(frozen=True)
class Cleared:
    pass


@dataclass(frozen=True)
class Set(Generic[T]):
    value: T


UNCHANGED = Unchanged()
CLEARED = Cleared()

FieldPatch = Union[Unchanged, Cleared, Set[T]]


def field_patch(payload: BaseModel, name: str) -> FieldPatch[Any]:
    if name not in payload.model_fields_set:
        return UNCHANGED
    value = getattr(payload, name)
    if value is None:
        return CLEARED
    return Set(value)


def resolve(patch: FieldPatch[T], current: T | None) -> T | None:
    """Apply ``patch`` to ``current``."""
    if isinstance(patch, Set):
        return patch.value
    if isinstance(patch, Cleared):
        return None
    return current
