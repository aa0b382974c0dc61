"""
Taskboard - Tagged field updates.

A partial update maps field names to one of three values:

    KEEP         leave the field untouched
    SetTo(v)     assign v (v may itself be None)
    CLEAR        remove the field from the stored document

The document store understands CLEAR directly, so the same marker flows
from service callers down to storage without a store-specific primitive.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class Keep:
    """Leave the field as it is."""

    _instance: Keep | None = None

    def __new__(cls) -> Keep:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "KEEP"


class Clear:
    """Remove the field."""

    _instance: Clear | None = None

    def __new__(cls) -> Clear:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "CLEAR"


@dataclass(frozen=True)
class SetTo:
    """Assign a new value."""

    value: Any


KEEP = Keep()
CLEAR = Clear()

FieldUpdate = Keep | SetTo | Clear


def is_keep(update: Any) -> bool:
    return isinstance(update, Keep)


def resolve(update: FieldUpdate, current: Any) -> Any:
    """Return the value a field has after applying *update*.

    CLEAR resolves to None: entities model an absent field as None.
    """
    if isinstance(update, SetTo):
        return update.value
    if isinstance(update, Clear):
        return None
    if isinstance(update, Keep):
        return current
    raise TypeError(f"Not a field update: {update!r}")


def document_diff(before: dict[str, Any], after: dict[str, Any]) -> dict[str, Any]:
    """Compute the store-level change set turning *before* into *after*.

    Keys missing from *after* become CLEAR; unchanged keys are omitted.
    """
    changes: dict[str, Any] = {}
    for key, value in after.items():
        if key == "id":
            continue
        if key not in before or before[key] != value:
            changes[key] = value
    for key in before:
        if key != "id" and key not in after:
            changes[key] = CLEAR
    return changes
