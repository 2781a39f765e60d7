"""
Vesting schedules, position ledger and the redemption engine.
"""

from .engine import SCHEDULES_METADATA_KEY, CallResult, VoucherEngine, VoucherEvent
from .escrow import Escrow
from .journal import atomic_call
from .ledger import Position, PositionLedger
from .metering import GAS_COSTS, GasMeter, estimate_create_gas, estimate_redeem_gas
from .schedule import (
    DAY,
    LinearGranularity,
    Schedule,
    ScheduleStatus,
    VestingKind,
    releasable_amount,
    vested_amount,
)
from .schedule_set import ScheduleSet, validate_schedule

__all__ = [
    "DAY",
    "VestingKind",
    "LinearGranularity",
    "ScheduleStatus",
    "Schedule",
    "vested_amount",
    "releasable_amount",
    "ScheduleSet",
    "validate_schedule",
    "Position",
    "PositionLedger",
    "Escrow",
    "atomic_call",
    "GasMeter",
    "GAS_COSTS",
    "estimate_create_gas",
    "estimate_redeem_gas",
    "VoucherEngine",
    "VoucherEvent",
    "CallResult",
    "SCHEDULES_METADATA_KEY",
]
