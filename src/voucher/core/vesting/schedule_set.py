"""
Validated collection of schedules composing one position.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..config import MAX_SCHEDULES
from ..exceptions import ResourceLimitError, ValidationError
from .schedule import GRANULARITY_SECONDS, LinearGranularity, Schedule, VestingKind


@dataclass
class ScheduleSet:
    """
    1..MAX_SCHEDULES schedules plus an optional declared balance.

    When balance is given it must equal the sum of schedule amounts; it is
    the caller's statement of how much escrow they expect to be pulled.
    """

    schedules: List[Schedule] = field(default_factory=list)
    balance: Optional[int] = None

    @property
    def escrowed_total(self) -> int:
        return sum(schedule.amount for schedule in self.schedules)

    def __len__(self) -> int:
        return len(self.schedules)

    def validate(self) -> int:
        """
        Validate the set and return the total to escrow.

        Raises:
            ValidationError: Empty set or malformed schedule
            ResourceLimitError: More than MAX_SCHEDULES schedules
        """
        if not self.schedules:
            raise ValidationError("Schedule set cannot be empty")
        if len(self.schedules) > MAX_SCHEDULES:
            raise ResourceLimitError(
                f"Schedule set has {len(self.schedules)} schedules, maximum is {MAX_SCHEDULES}",
                details={"count": len(self.schedules), "max": MAX_SCHEDULES},
            )

        for index, schedule in enumerate(self.schedules):
            validate_schedule(schedule, index)

        total = self.escrowed_total
        if self.balance is not None and self.balance != total:
            raise ValidationError(
                f"Declared balance {self.balance} does not match schedule total {total}",
                details={"balance": self.balance, "total": total},
            )
        return total

    def fresh_copies(self) -> List[Schedule]:
        """Copies with remaining_amount reset to amount, for storage in a new position."""
        return [
            Schedule(
                amount=s.amount,
                kind=VestingKind(s.kind),
                start_time=s.start_time,
                end_time=s.end_time,
                granularity=(
                    LinearGranularity(s.granularity)
                    if s.kind == VestingKind.LINEAR else None
                ),
            )
            for s in self.schedules
        ]

    @classmethod
    def of(cls, schedules: Iterable[Schedule], balance: Optional[int] = None) -> "ScheduleSet":
        return cls(schedules=list(schedules), balance=balance)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduleSet":
        return cls(
            schedules=[Schedule.from_dict(item) for item in data.get("schedules", [])],
            balance=data.get("balance"),
        )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_schedule(schedule: Schedule, index: int = 0) -> None:
    """
    Check one schedule's shape.

    Raises:
        ValidationError: With the offending schedule index in details
    """
    details = {"index": index}

    if not _is_int(schedule.amount) or schedule.amount <= 0:
        raise ValidationError(f"Schedule {index}: amount must be a positive integer", details=details)

    if schedule.kind == VestingKind.LINEAR:
        if schedule.granularity not in GRANULARITY_SECONDS:
            raise ValidationError(
                f"Schedule {index}: unrecognized granularity {schedule.granularity!r}",
                details=details,
            )
        if not _is_int(schedule.start_time) or not _is_int(schedule.end_time):
            raise ValidationError(
                f"Schedule {index}: linear schedule needs integer start and end times",
                details=details,
            )
        if schedule.start_time < 0:
            raise ValidationError(f"Schedule {index}: start time cannot be negative", details=details)
        if schedule.end_time <= schedule.start_time:
            raise ValidationError(f"Schedule {index}: end time must be after start time", details=details)
    elif schedule.kind == VestingKind.STAGED:
        if not _is_int(schedule.start_time) or schedule.start_time <= 0:
            raise ValidationError(f"Schedule {index}: staged schedule needs a start time", details=details)
    else:
        raise ValidationError(f"Schedule {index}: unrecognized kind {schedule.kind!r}", details=details)
