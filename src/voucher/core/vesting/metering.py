"""
Per-call resource metering.

Each engine step charges a fixed number of gas units, so the cost of a call
is linear in the number of schedules it touches. A call that would exceed
its ceiling raises OutOfGasError before its first state change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..exceptions import OutOfGasError

logger = logging.getLogger(__name__)

# Gas schedule
GAS_COSTS: dict[str, int] = {
    "create.base": 120_000,
    "create.schedule": 95_000,
    "escrow.pull": 55_000,
    "escrow.push": 45_000,
    "receipt.mint": 70_000,
    "metadata.write": 40_000,
    "metadata.word": 640,  # per 32 bytes of value
    "redeem.base": 60_000,
    "redeem.schedule": 32_000,
}


@dataclass
class GasMeter:
    """
    Accumulates gas for one call.

    Usage:
        meter = GasMeter(limit=REDEEM_GAS_LIMIT)
        meter.charge("redeem.base")
        meter.charge("redeem.schedule", times=len(schedules))
    """

    limit: int
    used: int = 0
    breakdown: dict[str, int] = field(default_factory=dict)

    @property
    def remaining(self) -> int:
        return self.limit - self.used

    def charge(self, operation: str, times: int = 1, units: int | None = None) -> int:
        """
        Charge an operation from the gas schedule (or explicit units).

        Returns:
            Gas used so far

        Raises:
            OutOfGasError: The limit would be exceeded
        """
        cost = (GAS_COSTS[operation] if units is None else units) * times
        if self.used + cost > self.limit:
            logger.warning(
                "Gas limit exceeded",
                extra={
                    "event": "metering.out_of_gas",
                    "operation": operation,
                    "used": self.used,
                    "cost": cost,
                    "limit": self.limit,
                },
            )
            raise OutOfGasError(
                f"Out of gas: {operation} needs {cost}, {self.remaining} of {self.limit} left",
                used=self.used + cost,
                limit=self.limit,
            )
        self.used += cost
        self.breakdown[operation] = self.breakdown.get(operation, 0) + cost
        return self.used


def estimate_create_gas(schedule_count: int, metadata_bytes: int = 0) -> int:
    """Gas a create call with this shape will charge."""
    total = (
        GAS_COSTS["create.base"]
        + GAS_COSTS["create.schedule"] * schedule_count
        + GAS_COSTS["escrow.pull"]
        + GAS_COSTS["receipt.mint"]
    )
    if metadata_bytes:
        total += GAS_COSTS["metadata.write"] + GAS_COSTS["metadata.word"] * _words(metadata_bytes)
    return total


def estimate_redeem_gas(schedule_count: int) -> int:
    return (
        GAS_COSTS["redeem.base"]
        + GAS_COSTS["redeem.schedule"] * schedule_count
        + GAS_COSTS["escrow.push"]
    )


def _words(size: int) -> int:
    return (size + 31) // 32
