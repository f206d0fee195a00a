"""Status codes shared by every soft-deletable table."""
from __future__ import annotations

from enum import IntEnum


class Status(IntEnum):
    ACTIVE = 0
    INACTIVE = 1  # soft-deleted / disabled
    PENDING = 2
    SUSPENDED = 3

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    Status.ACTIVE: "Active",
    Status.INACTIVE: "Inactive/Deleted",
    Status.PENDING: "Pending",
    Status.SUSPENDED: "Suspended",
}


def is_active(status_id: int | None) -> bool:
    return status_id == Status.ACTIVE


def describe(status_id: int | None) -> str:
    try:
        return Status(status_id).description  # type: ignore[arg-type]
    except ValueError:
        return "Unknown"


__all__ = ["Status", "describe", "is_active"]
