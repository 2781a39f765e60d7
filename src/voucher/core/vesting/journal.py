"""
All-or-nothing execution of one engine call.

atomic_call yields a CallJournal. Before each mutating step the engine
captures the participant it is about to change, scoped to the keys that
step touches (a position id, a few balances, one receipt id). If the body
raises, every capture is rolled back in reverse order before the exception
propagates, so a failed call leaves no trace in the token, receipt
collection, registry or ledger. The work done is proportional to what the
call touches, never to the size of the participants.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Protocol, Tuple

logger = logging.getLogger(__name__)


class Checkpointable(Protocol):
    def checkpoint(self, **scope: Any) -> Any: ...

    def rollback(self, checkpoint: Any) -> None: ...


@dataclass
class CallJournal:
    """Undo log for one call."""

    operation: str
    entries: List[Tuple[Checkpointable, Any]] = field(default_factory=list)

    def capture(self, participant: Checkpointable, **scope: Any) -> None:
        """Record participant's state for scope before it is mutated."""
        self.entries.append((participant, participant.checkpoint(**scope)))

    def rollback(self) -> None:
        for participant, checkpoint in reversed(self.entries):
            participant.rollback(checkpoint)
        self.entries.clear()


@contextmanager
def atomic_call(operation: str) -> Iterator[CallJournal]:
    """
    Run the body atomically.

    Usage:
        with atomic_call("redeem") as journal:
            journal.capture(ledger, position_ids=(position_id,))
            ledger.apply_redemption(position_id, deltas)
    """
    journal = CallJournal(operation=operation)
    try:
        yield journal
    except BaseException as exc:
        captured = len(journal.entries)
        journal.rollback()
        logger.info(
            "Call rolled back",
            extra={
                "event": "journal.rollback",
                "operation": operation,
                "error_type": type(exc).__name__,
                "captures": captured,
            },
        )
        raise
