"""
Tests for atomic_call rollback and per-call gas metering.
"""

import pytest

from voucher.core.exceptions import OutOfGasError, ResourceLimitError, ValidationError
from voucher.core.vesting import (
    GAS_COSTS,
    GasMeter,
    atomic_call,
    estimate_create_gas,
    estimate_redeem_gas,
)
from voucher.core.config import CREATE_GAS_LIMIT, MAX_SCHEDULES, REDEEM_GAS_LIMIT


class Counter:
    def __init__(self):
        self.values = {}
        self.rolled_back = []

    def checkpoint(self, keys=()):
        return {key: self.values.get(key) for key in keys}

    def rollback(self, checkpoint):
        self.rolled_back.append(checkpoint)
        for key, value in checkpoint.items():
            if value is None:
                self.values.pop(key, None)
            else:
                self.values[key] = value


class TestAtomicCall:
    def test_commit_keeps_changes(self):
        counter = Counter()
        with atomic_call("test") as journal:
            journal.capture(counter, keys=("a",))
            counter.values["a"] = 5
        assert counter.values == {"a": 5}
        assert counter.rolled_back == []

    def test_failure_rolls_back_every_capture(self):
        first, second = Counter(), Counter()
        first.values["x"], second.values["y"] = 1, 2

        with pytest.raises(ValidationError):
            with atomic_call("test") as journal:
                journal.capture(first, keys=("x",))
                first.values["x"] = 10
                journal.capture(second, keys=("y", "z"))
                second.values["y"] = 20
                second.values["z"] = 30
                raise ValidationError("boom")

        assert first.values == {"x": 1}
        assert second.values == {"y": 2}

    def test_only_captured_keys_are_touched(self):
        counter = Counter()
        counter.values.update(a=1, b=2)

        with pytest.raises(RuntimeError):
            with atomic_call("test") as journal:
                journal.capture(counter, keys=("a",))
                counter.values["a"] = 100
                raise RuntimeError("fail")

        assert counter.rolled_back == [{"a": 1}]
        assert counter.values == {"a": 1, "b": 2}

    def test_rolls_back_in_reverse_order(self):
        order = []

        class Tracked(Counter):
            def __init__(self, name):
                super().__init__()
                self.name = name

            def rollback(self, checkpoint):
                order.append(self.name)

        with pytest.raises(RuntimeError):
            with atomic_call("test") as journal:
                for name in ("a", "b", "c"):
                    journal.capture(Tracked(name))
                raise RuntimeError("fail")

        assert order == ["c", "b", "a"]

    def test_failure_before_any_capture(self):
        with pytest.raises(KeyError):
            with atomic_call("test") as journal:
                raise KeyError("x")
        assert journal.entries == []

    def test_rollback_is_logged(self, caplog):
        counter = Counter()
        with caplog.at_level("INFO", logger="voucher.core.vesting.journal"):
            with pytest.raises(ValidationError):
                with atomic_call("redeem") as journal:
                    journal.capture(counter)
                    raise ValidationError("boom")

        record = next(r for r in caplog.records if getattr(r, "event", "") == "journal.rollback")
        assert record.operation == "redeem"
        assert record.error_type == "ValidationError"
        assert record.captures == 1


class TestGasMeter:
    def test_charges_accumulate(self):
        meter = GasMeter(limit=1_000_000)
        meter.charge("redeem.base")
        meter.charge("redeem.schedule", times=3)

        assert meter.used == GAS_COSTS["redeem.base"] + 3 * GAS_COSTS["redeem.schedule"]
        assert meter.breakdown["redeem.schedule"] == 3 * GAS_COSTS["redeem.schedule"]
        assert meter.remaining == 1_000_000 - meter.used

    def test_explicit_units(self):
        meter = GasMeter(limit=100)
        assert meter.charge("custom", units=40, times=2) == 80

    def test_exceeding_limit(self):
        meter = GasMeter(limit=100_000)
        meter.charge("redeem.base")

        with pytest.raises(OutOfGasError) as excinfo:
            meter.charge("redeem.schedule", times=2)

        assert isinstance(excinfo.value, ResourceLimitError)
        assert excinfo.value.limit == 100_000
        # A rejected charge is not recorded
        assert meter.used == GAS_COSTS["redeem.base"]

    def test_exact_limit_allowed(self):
        meter = GasMeter(limit=GAS_COSTS["escrow.push"])
        meter.charge("escrow.push")
        assert meter.remaining == 0


class TestEstimates:
    def test_linear_in_schedule_count(self):
        step = estimate_create_gas(2) - estimate_create_gas(1)
        assert step == GAS_COSTS["create.schedule"]
        assert estimate_redeem_gas(5) - estimate_redeem_gas(4) == GAS_COSTS["redeem.schedule"]

    def test_metadata_charged_per_word(self):
        base = estimate_create_gas(1)
        assert estimate_create_gas(1, metadata_bytes=32) == base + GAS_COSTS["metadata.write"] + GAS_COSTS["metadata.word"]
        assert estimate_create_gas(1, metadata_bytes=33) == base + GAS_COSTS["metadata.write"] + 2 * GAS_COSTS["metadata.word"]

    def test_worst_case_fits_ceilings(self):
        # Ten schedules with generous metadata
        assert estimate_create_gas(MAX_SCHEDULES, metadata_bytes=4_096) <= CREATE_GAS_LIMIT
        assert estimate_redeem_gas(MAX_SCHEDULES) <= REDEEM_GAS_LIMIT
