"""Operator-to-sector assignment lookup consumed by check-in."""

from __future__ import annotations

from typing import Iterable, Protocol


class AssignmentDirectory(Protocol):
    """Answers whether an operator may work a sector (and street) right now."""

    def is_active(
        self, operator_id: str, sector_id: str, street_id: str | None
    ) -> bool:
        ...


class StaticAssignmentDirectory:
    """
    Fixed assignment table.

    An entry with ``street_id=None`` covers every street of the sector.
    """

    def __init__(self, assignments: Iterable[tuple[str, str, str | None]] = ()):
        self._assignments: set[tuple[str, str, str | None]] = set(assignments)

    def assign(
        self, operator_id: str, sector_id: str, street_id: str | None = None
    ) -> None:
        self._assignments.add((operator_id, sector_id, street_id))

    def revoke(
        self, operator_id: str, sector_id: str, street_id: str | None = None
    ) -> None:
        self._assignments.discard((operator_id, sector_id, street_id))

    def is_active(
        self, operator_id: str, sector_id: str, street_id: str | None
    ) -> bool:
        if (operator_id, sector_id, None) in self._assignments:
            return True
        return (
            street_id is not None
            and (operator_id, sector_id, street_id) in self._assignments
        )
