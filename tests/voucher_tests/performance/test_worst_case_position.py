"""
Worst-case shape benchmark: ten mixed schedules escrowing 1,000,000 units,
redeemed once at a uniformly random offset within the first year.

Gas figures must stay inside the per-call ceilings for every shape mix.
"""

import random
import time

import pytest

from voucher.core.config import CREATE_GAS_LIMIT, MAX_SCHEDULES, REDEEM_GAS_LIMIT
from voucher.core.deployment import deploy_voucher_system
from voucher.core.exceptions import NoOpError
from voucher.core.identifiers import derive_address
from voucher.core.vesting import DAY, LinearGranularity, Schedule, ScheduleSet

pytestmark = pytest.mark.performance

T0 = 1_700_000_000
YEAR = 365 * DAY
TOTAL = 1_000_000


def _mixed_schedules(rng, linear_count):
    per_schedule = TOTAL // MAX_SCHEDULES
    schedules = []
    for index in range(MAX_SCHEDULES):
        if index < linear_count:
            granularity = list(LinearGranularity)[index % len(LinearGranularity)]
            schedules.append(Schedule.linear(per_schedule, T0, T0 + YEAR, granularity))
        else:
            schedules.append(Schedule.staged(per_schedule, T0 + rng.randint(1, YEAR)))
    return schedules


@pytest.mark.parametrize("linear_count", [0, 5, 10])
@pytest.mark.parametrize("seed", range(5))
def test_ten_schedule_position_within_ceilings(linear_count, seed):
    rng = random.Random(seed * 31 + linear_count)
    admin = derive_address("perf:admin")
    holder = derive_address("perf:holder")

    system = deploy_voucher_system(admin, time_provider=lambda: T0)
    schedule_set = ScheduleSet.of(_mixed_schedules(rng, linear_count))
    assert schedule_set.escrowed_total == TOTAL
    system.fund(holder, TOTAL)

    position_id = system.engine.create(holder, schedule_set)
    create_gas = system.engine.last_call.gas_used
    assert create_gas <= CREATE_GAS_LIMIT

    redeem_at = T0 + rng.randint(0, YEAR)
    try:
        redeemed = system.engine.redeem(holder, position_id, now=redeem_at)
    except NoOpError:
        redeemed = 0
    else:
        assert system.engine.last_call.gas_used <= REDEEM_GAS_LIMIT

    assert 0 <= redeemed <= TOTAL
    assert system.token.balance_of(holder) == redeemed
    assert system.engine.escrow.held == TOTAL - redeemed


def test_create_and_redeem_throughput():
    admin = derive_address("perf:admin")
    holder = derive_address("perf:holder")
    system = deploy_voucher_system(admin, time_provider=lambda: T0)
    rng = random.Random(0)

    positions = 200
    system.fund(holder, positions * TOTAL)

    started = time.perf_counter()
    ids = [
        system.engine.create(holder, ScheduleSet.of(_mixed_schedules(rng, 5)))
        for _ in range(positions)
    ]
    redeemed = sum(system.engine.redeem(holder, pid, now=T0 + YEAR) for pid in ids)
    elapsed = time.perf_counter() - started

    assert redeemed == positions * TOTAL
    assert system.engine.outstanding_total() == 0
    # Generous bound; catches accidental quadratic behaviour
    assert elapsed < 60
