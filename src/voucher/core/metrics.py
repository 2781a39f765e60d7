"""
Voucher engine instrumentation.

Prometheus metrics for position lifecycle and per-call gas usage, with
helpers that are safe to call from the create/redeem paths.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

positions_created_counter = Counter(
    "voucher_positions_created_total", "Total number of vesting positions created"
)

amount_escrowed_counter = Counter(
    "voucher_amount_escrowed_total", "Total token units pulled into escrow"
)

amount_redeemed_counter = Counter(
    "voucher_amount_redeemed_total", "Total token units released to holders"
)

failed_calls_counter = Counter(
    "voucher_failed_calls_total",
    "Engine calls aborted with an error",
    ["operation", "error_type"],
)

gas_used_histogram = Histogram(
    "voucher_gas_used",
    "Metered gas units consumed per engine call",
    ["operation"],
    buckets=(50_000, 100_000, 250_000, 500_000, 750_000, 1_000_000, 1_500_000, 2_000_000),
)


def record_created(escrowed_total: int) -> None:
    """Count a new position and the amount it escrowed."""
    positions_created_counter.inc()
    if escrowed_total > 0:
        amount_escrowed_counter.inc(escrowed_total)


def record_redeemed(amount: int) -> None:
    if amount <= 0:
        return
    amount_redeemed_counter.inc(amount)


def record_failure(operation: str, exc: Exception) -> None:
    failed_calls_counter.labels(operation=operation, error_type=type(exc).__name__).inc()


def record_gas(operation: str, used: int) -> None:
    gas_used_histogram.labels(operation=operation).observe(used)
