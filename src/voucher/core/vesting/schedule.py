"""
Release schedules and the pure vesting computation.

A schedule is one sub-allocation of a position. Its shape (amount, kind,
granularity, start/end) is frozen at creation; only remaining_amount and
status change, and only through the position ledger.

vested_amount() dispatches on the schedule kind through RELEASE_RULES, so a
new release shape (e.g. dated tranches) is a new rule function, with no
change needed in the ledger or the engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, Optional

from ..exceptions import ValidationError

DAY = 24 * 60 * 60


class VestingKind(IntEnum):
    LINEAR = 1
    STAGED = 2


class LinearGranularity(IntEnum):
    """Step size of linear vesting."""

    DAILY = 1
    WEEKLY = 2
    MONTHLY = 3
    QUARTERLY = 4

    @property
    def seconds(self) -> int:
        return GRANULARITY_SECONDS[self]


GRANULARITY_SECONDS: Dict[LinearGranularity, int] = {
    LinearGranularity.DAILY: DAY,
    LinearGranularity.WEEKLY: 7 * DAY,
    LinearGranularity.MONTHLY: 30 * DAY,
    LinearGranularity.QUARTERLY: 91 * DAY,
}


class ScheduleStatus(IntEnum):
    UNVESTED = 0
    VESTED = 1
    VESTING = 2


@dataclass
class Schedule:
    """
    One release schedule.

    Attributes:
        amount: Total allocation in the smallest token unit
        kind: LINEAR or STAGED
        granularity: Step size (LINEAR only)
        start_time: Unix seconds; for STAGED the single unlock instant
        end_time: Unix seconds (LINEAR only)
        remaining_amount: Not yet released; starts at amount
        status: Derived from remaining_amount after each redemption
    """

    amount: int
    kind: VestingKind
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    granularity: Optional[LinearGranularity] = None
    remaining_amount: Optional[int] = None
    status: ScheduleStatus = ScheduleStatus.UNVESTED

    def __post_init__(self) -> None:
        if self.remaining_amount is None:
            self.remaining_amount = self.amount

    @property
    def released_amount(self) -> int:
        return self.amount - self.remaining_amount

    @classmethod
    def linear(
        cls,
        amount: int,
        start_time: int,
        end_time: int,
        granularity: LinearGranularity = LinearGranularity.DAILY,
    ) -> "Schedule":
        return cls(
            amount=amount,
            kind=VestingKind.LINEAR,
            start_time=start_time,
            end_time=end_time,
            granularity=granularity,
        )

    @classmethod
    def staged(cls, amount: int, start_time: int) -> "Schedule":
        return cls(amount=amount, kind=VestingKind.STAGED, start_time=start_time)

    def copy(self) -> "Schedule":
        return Schedule(
            amount=self.amount,
            kind=self.kind,
            start_time=self.start_time,
            end_time=self.end_time,
            granularity=self.granularity,
            remaining_amount=self.remaining_amount,
            status=self.status,
        )

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "kind": self.kind.name.lower(),
            "granularity": self.granularity.name.lower() if self.granularity else None,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "remaining_amount": self.remaining_amount,
            "status": self.status.name.lower(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Schedule":
        """
        Build a schedule from a dict.

        Enum fields accept either the lowercase name ("linear") or the
        numeric code (1).

        Raises:
            ValidationError: On unknown kind, granularity or status
        """
        kind = _parse_enum(VestingKind, data.get("kind"), "kind")
        granularity = None
        if data.get("granularity") is not None:
            granularity = _parse_enum(LinearGranularity, data["granularity"], "granularity")
        status = ScheduleStatus.UNVESTED
        if data.get("status") is not None:
            status = _parse_enum(ScheduleStatus, data["status"], "status")
        return cls(
            amount=data.get("amount", 0),
            kind=kind,
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            granularity=granularity,
            remaining_amount=data.get("remaining_amount"),
            status=status,
        )


def _parse_enum(enum_cls: type[Enum], raw: Any, field_name: str):
    try:
        if isinstance(raw, str):
            return enum_cls[raw.upper()]
        return enum_cls(raw)
    except (KeyError, ValueError) as exc:
        raise ValidationError(
            f"Unrecognized {field_name}: {raw!r}",
            details={"field": field_name},
        ) from exc


# ==================== Release rules ====================


def _linear_vested(schedule: Schedule, now: int) -> int:
    # Step-wise release; a trailing partial period folds into the last step.
    period = GRANULARITY_SECONDS[schedule.granularity]
    elapsed = max(0, now - schedule.start_time)
    steps_elapsed = elapsed // period
    steps_total = max(1, (schedule.end_time - schedule.start_time) // period)
    return min(schedule.amount, schedule.amount * steps_elapsed // steps_total)


def _staged_vested(schedule: Schedule, now: int) -> int:
    # Single cliff at start_time.
    return schedule.amount if now >= schedule.start_time else 0


RELEASE_RULES: Dict[VestingKind, Callable[[Schedule, int], int]] = {
    VestingKind.LINEAR: _linear_vested,
    VestingKind.STAGED: _staged_vested,
}


def vested_amount(schedule: Schedule, now: int) -> int:
    """
    Amount of a schedule that has vested as of now.

    Pure and monotonic non-decreasing in now; never exceeds schedule.amount.

    Args:
        schedule: A validated schedule
        now: Unix timestamp in seconds

    Returns:
        Vested amount in the smallest token unit
    """
    return RELEASE_RULES[schedule.kind](schedule, now)


def releasable_amount(schedule: Schedule, now: int) -> int:
    """Vested but not yet released."""
    return max(0, vested_amount(schedule, now) - schedule.released_amount)


def derive_status(schedule: Schedule) -> ScheduleStatus:
    if schedule.remaining_amount == 0:
        return ScheduleStatus.VESTED
    if schedule.remaining_amount == schedule.amount:
        return ScheduleStatus.UNVESTED
    return ScheduleStatus.VESTING
