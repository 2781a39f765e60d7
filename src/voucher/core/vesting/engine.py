"""
Redemption engine: creates vesting positions and redeems released amounts.

create() escrows the sum of a schedule set, records a position and mints a
receipt token to the caller. redeem() pays the receipt holder whatever has
vested since the last redemption. Each call is metered and runs inside
atomic_call, so any failure leaves token balances, receipts, metadata and
the ledger exactly as they were.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .. import metrics
from ..config import (
    CREATE_GAS_LIMIT,
    METADATA_ENABLED,
    REDEEM_GAS_LIMIT,
)
from ..contracts.data_registry import DataRegistry
from ..contracts.erc20 import ERC20Token
from ..contracts.erc721 import ERC721Token
from ..exceptions import AuthorizationError, NoOpError, ValidationError, VoucherError
from ..identifiers import (
    ZERO_ADDRESS,
    content_id,
    derive_address,
    is_valid_address,
    normalize_address,
)
from .escrow import Escrow
from .journal import atomic_call
from .ledger import Position, PositionLedger
from .metering import GasMeter
from .schedule import releasable_amount, vested_amount
from .schedule_set import ScheduleSet

logger = logging.getLogger(__name__)

SCHEDULES_METADATA_KEY = content_id("voucher.schedules")
SCHEDULES_METADATA_SCHEMA = (
    "json:list[{amount:uint256,kind:str,granularity:str|null,"
    "start_time:uint64,end_time:uint64|null}]"
)


@dataclass
class VoucherEvent:
    """Created or Redeemed lifecycle event."""

    event_type: str  # "Created" or "Redeemed"
    position_id: int
    account: str
    amount: int
    timestamp: int
    gas_used: int = 0


@dataclass
class CallResult:
    """Outcome of the last successful call, for callers that want gas figures."""

    position_id: int
    amount: int
    gas_used: int
    gas_breakdown: dict = field(default_factory=dict)


class VoucherEngine:
    """
    Orchestrates position creation and redemption.

    The engine's address is its identity towards collaborators: it is the
    escrow custodian, and it must hold MINTER on the receipt collection and
    WRITER on the registry (when one is attached) before first use.

    Usage:
        engine = VoucherEngine(token, receipts, registry)
        position_id = engine.create(holder, ScheduleSet.of([...]), now=t0)
        released = engine.redeem(holder, position_id, now=t0 + 91 * DAY)
    """

    def __init__(
        self,
        token: ERC20Token,
        receipts: ERC721Token,
        registry: Optional[DataRegistry] = None,
        address: Optional[str] = None,
        ledger: Optional[PositionLedger] = None,
        time_provider: Optional[Callable[[], int]] = None,
        create_gas_limit: int = CREATE_GAS_LIMIT,
        redeem_gas_limit: int = REDEEM_GAS_LIMIT,
        metadata_enabled: bool = METADATA_ENABLED,
    ) -> None:
        self.token = token
        self.receipts = receipts
        self.registry = registry
        self.address = normalize_address(
            address or derive_address(f"voucher:{token.address}:{receipts.address}")
        )
        self.ledger = ledger or PositionLedger()
        self.escrow = Escrow(token=token, custodian=self.address)
        self.create_gas_limit = create_gas_limit
        self.redeem_gas_limit = redeem_gas_limit
        self.metadata_enabled = metadata_enabled and registry is not None
        self.events: List[VoucherEvent] = []
        self.last_call: Optional[CallResult] = None
        self._time_provider = time_provider or (lambda: int(time.time()))

        logger.info(
            "VoucherEngine initialized",
            extra={
                "event": "voucher.initialized",
                "address": self.address[:10],
                "token": token.symbol,
                "receipts": receipts.symbol,
                "metadata": self.metadata_enabled,
            },
        )

    # ==================== Entry points ====================

    def create(self, caller: str, schedule_set: ScheduleSet, now: Optional[int] = None) -> int:
        """
        Escrow the set's total and open a new position for caller.

        Args:
            caller: Account funding the position; receives the receipt
            schedule_set: 1..MAX_SCHEDULES schedules
            now: Creation instant (defaults to the time provider)

        Returns:
            New position id (equal to the receipt token id)

        Raises:
            ValidationError: Malformed set or caller
            ResourceLimitError: Too many schedules or gas limit exceeded
            InsufficientFundsError: Escrow pull failed
            AuthorizationError: Engine lacks MINTER/WRITER capability
        """
        try:
            return self._create(caller, schedule_set, now)
        except VoucherError as exc:
            metrics.record_failure("create", exc)
            raise

    def redeem(self, caller: str, position_id: int, now: Optional[int] = None) -> int:
        """
        Release everything vested but not yet released to the receipt holder.

        Args:
            caller: Must currently hold the position's receipt
            position_id: Position to redeem
            now: Redemption instant (defaults to the time provider)

        Returns:
            Amount transferred to caller

        Raises:
            NotFoundError: Unknown position
            AuthorizationError: Caller does not hold the receipt
            NoOpError: Nothing is redeemable at now
            ResourceLimitError: Gas limit exceeded
        """
        try:
            return self._redeem(caller, position_id, now)
        except VoucherError as exc:
            metrics.record_failure("redeem", exc)
            raise

    # ==================== Views ====================

    def get_position(self, position_id: int) -> Position:
        return self.ledger.get(position_id)

    def holder_of(self, position_id: int) -> str:
        self.ledger.get(position_id)
        return self.receipts.owner_of(position_id)

    def vested_amount(self, position_id: int, now: Optional[int] = None) -> int:
        """Total vested across the position's schedules at now."""
        position = self.ledger.get(position_id)
        at = self._resolve_now(now)
        return sum(vested_amount(s, at) for s in position.schedules)

    def redeemable_amount(self, position_id: int, now: Optional[int] = None) -> int:
        """What redeem() would pay at now; 0 instead of NoOpError."""
        position = self.ledger.get(position_id)
        at = self._resolve_now(now)
        return sum(releasable_amount(s, at) for s in position.schedules)

    def outstanding_total(self) -> int:
        """Escrowed amounts not yet released, across all positions."""
        return sum(p.remaining_total for p in self.ledger.positions.values())

    # ==================== Internals ====================

    def _create(self, caller: str, schedule_set: ScheduleSet, now: Optional[int]) -> int:
        caller_norm = self._require_live(caller)
        total = schedule_set.validate()
        created_at = self._resolve_now(now)

        metadata = self._encode_schedules(schedule_set) if self.metadata_enabled else b""

        meter = GasMeter(limit=self.create_gas_limit)
        meter.charge("create.base")
        meter.charge("create.schedule", times=len(schedule_set))
        meter.charge("escrow.pull")
        meter.charge("receipt.mint")
        if metadata:
            meter.charge("metadata.write")
            meter.charge("metadata.word", times=(len(metadata) + 31) // 32)

        with atomic_call("create") as journal:
            journal.capture(
                self.token,
                accounts=(caller_norm, self.address),
                allowances=((caller_norm, self.address),),
            )
            self.escrow.pull(caller_norm, total)

            journal.capture(self.ledger)
            position_id = self.ledger.create(schedule_set, created_at)

            journal.capture(self.receipts, token_ids=(position_id,), accounts=(caller_norm,))
            self.receipts.mint(self.address, caller_norm, position_id)

            if metadata:
                journal.capture(
                    self.registry,
                    entries=((self.receipts.address, position_id, SCHEDULES_METADATA_KEY),),
                    schema_keys=(SCHEDULES_METADATA_KEY,),
                )
                self._write_metadata(caller_norm, position_id, metadata)

        self.events.append(
            VoucherEvent(
                event_type="Created",
                position_id=position_id,
                account=caller_norm,
                amount=total,
                timestamp=created_at,
                gas_used=meter.used,
            )
        )
        self.last_call = CallResult(position_id, total, meter.used, dict(meter.breakdown))
        metrics.record_created(total)
        metrics.record_gas("create", meter.used)

        logger.info(
            "Position created",
            extra={
                "event": "voucher.created",
                "position_id": position_id,
                "owner": caller_norm[:10],
                "escrowed_total": total,
                "schedules": len(schedule_set),
                "gas_used": meter.used,
            },
        )
        return position_id

    def _redeem(self, caller: str, position_id: int, now: Optional[int]) -> int:
        caller_norm = self._require_live(caller)
        position = self.ledger.get(position_id)

        holder = self.receipts.owner_of(position_id)
        if holder != caller_norm:
            raise AuthorizationError(
                f"account {caller_norm} does not hold position {position_id}",
                account=caller_norm,
                details={"position_id": position_id},
            )

        at = self._resolve_now(now)

        meter = GasMeter(limit=self.redeem_gas_limit)
        meter.charge("redeem.base")
        meter.charge("redeem.schedule", times=len(position.schedules))
        meter.charge("escrow.push")

        # A clock that moved backwards yields 0 here, never a negative delta.
        deltas = [releasable_amount(s, at) for s in position.schedules]
        redeemed = sum(deltas)
        if redeemed == 0:
            raise NoOpError(
                f"Nothing to redeem for position {position_id} at {at}",
                details={"position_id": position_id, "now": at},
            )

        with atomic_call("redeem") as journal:
            journal.capture(self.ledger, position_ids=(position_id,))
            self.ledger.apply_redemption(position_id, deltas)

            journal.capture(self.token, accounts=(self.address, caller_norm))
            self.escrow.push(caller_norm, redeemed)

        self.events.append(
            VoucherEvent(
                event_type="Redeemed",
                position_id=position_id,
                account=caller_norm,
                amount=redeemed,
                timestamp=at,
                gas_used=meter.used,
            )
        )
        self.last_call = CallResult(position_id, redeemed, meter.used, dict(meter.breakdown))
        metrics.record_redeemed(redeemed)
        metrics.record_gas("redeem", meter.used)

        logger.info(
            "Position redeemed",
            extra={
                "event": "voucher.redeemed",
                "position_id": position_id,
                "holder": caller_norm[:10],
                "amount": redeemed,
                "remaining": position.remaining_total,
                "gas_used": meter.used,
            },
        )
        return redeemed

    def _write_metadata(self, requester: str, position_id: int, value: bytes) -> None:
        if not self.registry.get_schema(SCHEDULES_METADATA_KEY):
            self.registry.set_schema(self.address, SCHEDULES_METADATA_KEY, SCHEDULES_METADATA_SCHEMA)
        self.registry.write(
            self.address,
            requester,
            self.receipts.address,
            position_id,
            SCHEDULES_METADATA_KEY,
            value,
        )

    def _resolve_now(self, now: Optional[int]) -> int:
        if now is None:
            now = self._time_provider()
        if not isinstance(now, int) or isinstance(now, bool):
            raise ValidationError(f"Timestamp must be an integer, got {now!r}")
        return now

    @staticmethod
    def _require_live(caller: str) -> str:
        if not isinstance(caller, str) or not is_valid_address(caller):
            raise ValidationError(f"Invalid caller address: {caller!r}")
        caller_norm = normalize_address(caller)
        if caller_norm == ZERO_ADDRESS:
            raise ValidationError("Caller must be live account")
        return caller_norm

    @staticmethod
    def _encode_schedules(schedule_set: ScheduleSet) -> bytes:
        payload = []
        for schedule in schedule_set.fresh_copies():
            entry = schedule.to_dict()
            del entry["remaining_amount"], entry["status"]
            payload.append(entry)
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
