"""
Persistent per-position records.

Positions are keyed by sequential integer id starting at 0 and are never
removed. A fully redeemed position keeps its record with every schedule
VESTED and remaining_amount 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from ..exceptions import NotFoundError, ValidationError
from .schedule import Schedule, derive_status
from .schedule_set import ScheduleSet

logger = logging.getLogger(__name__)


@dataclass
class Position:
    """A vesting grant: escrowed total, its schedules and creation time."""

    id: int
    escrowed_total: int
    schedules: List[Schedule]
    created_at: int

    @property
    def remaining_total(self) -> int:
        return sum(s.remaining_amount for s in self.schedules)

    @property
    def released_total(self) -> int:
        return self.escrowed_total - self.remaining_total

    @property
    def fully_consumed(self) -> bool:
        return self.remaining_total == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "escrowed_total": self.escrowed_total,
            "schedules": [s.to_dict() for s in self.schedules],
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        return cls(
            id=int(data["id"]),
            escrowed_total=int(data["escrowed_total"]),
            schedules=[Schedule.from_dict(s) for s in data["schedules"]],
            created_at=int(data["created_at"]),
        )


@dataclass
class PositionLedger:
    """
    Storage for positions.

    Mutations are all-or-nothing: apply_redemption checks every delta
    before writing any of them.
    """

    positions: Dict[int, Position] = field(default_factory=dict)
    next_id: int = 0

    def __len__(self) -> int:
        return len(self.positions)

    def create(self, schedule_set: ScheduleSet, created_at: int) -> int:
        """
        Allocate the next id and store a position for an already validated set.

        Returns:
            The new position id
        """
        schedules = schedule_set.fresh_copies()
        position_id = self.next_id
        self.positions[position_id] = Position(
            id=position_id,
            escrowed_total=sum(s.amount for s in schedules),
            schedules=schedules,
            created_at=created_at,
        )
        self.next_id += 1

        logger.debug(
            "Position stored",
            extra={
                "event": "ledger.position_stored",
                "position_id": position_id,
                "schedules": len(schedules),
            },
        )
        return position_id

    def get(self, position_id: int) -> Position:
        """
        Raises:
            NotFoundError: If no position has this id
        """
        position = self.positions.get(position_id)
        if position is None:
            raise NotFoundError(
                f"Position {position_id} not found",
                details={"position_id": position_id},
            )
        return position

    def apply_redemption(self, position_id: int, deltas: Sequence[int]) -> int:
        """
        Reduce each schedule's remaining amount by its delta.

        Args:
            position_id: Position to update
            deltas: One non-negative amount per schedule, in schedule order

        Returns:
            Sum of deltas

        Raises:
            NotFoundError: Unknown position
            ValidationError: Wrong delta count, negative delta, or a delta
                larger than the schedule's remaining amount
        """
        position = self.get(position_id)
        if len(deltas) != len(position.schedules):
            raise ValidationError(
                f"Expected {len(position.schedules)} deltas, got {len(deltas)}",
                details={"position_id": position_id},
            )
        for index, (schedule, delta) in enumerate(zip(position.schedules, deltas)):
            if delta < 0 or delta > schedule.remaining_amount:
                raise ValidationError(
                    f"Schedule {index}: delta {delta} outside [0, {schedule.remaining_amount}]",
                    details={"position_id": position_id, "index": index},
                )

        for schedule, delta in zip(position.schedules, deltas):
            schedule.remaining_amount -= delta
            schedule.status = derive_status(schedule)

        return sum(deltas)

    # ==================== Checkpoint / Serialization ====================

    def checkpoint(self, position_ids: Sequence[int] = ()) -> Dict[str, Any]:
        """
        Capture the id counter and the mutable schedule fields of
        position_ids, for a call that will allocate or redeem.
        """
        return {
            "next_id": self.next_id,
            "positions": {
                pid: [(s.remaining_amount, s.status) for s in self.positions[pid].schedules]
                for pid in position_ids
                if pid in self.positions
            },
        }

    def rollback(self, checkpoint: Dict[str, Any]) -> None:
        """
        Undo a call: drop ids allocated since the checkpoint and write the
        captured fields back into the existing Schedule objects.
        """
        for pid in range(checkpoint["next_id"], self.next_id):
            self.positions.pop(pid, None)
        self.next_id = checkpoint["next_id"]

        for pid, fields in checkpoint["positions"].items():
            for schedule, (remaining, status) in zip(self.positions[pid].schedules, fields):
                schedule.remaining_amount = remaining
                schedule.status = status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "next_id": self.next_id,
            "positions": [p.to_dict() for p in self.positions.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PositionLedger":
        ledger = cls(next_id=int(data.get("next_id", 0)))
        for item in data.get("positions", []):
            position = Position.from_dict(item)
            ledger.positions[position.id] = position
        return ledger
