"""
Property-based tests for redemption accounting.

Properties checked for arbitrary schedule sets and redemption times:
1. Cumulative redeemed never exceeds the escrowed total
2. Cumulative redeemed is non-decreasing over increasing instants
3. After redeeming at Tn, cumulative redeemed equals the vested total at Tn
4. Custody always equals the outstanding (unreleased) total
5. The vested amount is monotonic in time

Usage:
    pytest tests/voucher_tests/invariants -v
"""

from hypothesis import HealthCheck, given, settings, strategies as st
from hypothesis.stateful import RuleBasedStateMachine, initialize, invariant, rule

from voucher.core.deployment import deploy_voucher_system
from voucher.core.exceptions import NoOpError
from voucher.core.identifiers import derive_address
from voucher.core.vesting import (
    DAY,
    LinearGranularity,
    Schedule,
    ScheduleSet,
    vested_amount,
)

T0 = 1_700_000_000
YEAR = 365 * DAY

ADMIN = derive_address("invariants:admin")
HOLDER = derive_address("invariants:holder")

# ============================================================================
# STRATEGIES
# ============================================================================

amounts = st.integers(min_value=1, max_value=10**24)


@st.composite
def linear_schedules(draw):
    start = T0 + draw(st.integers(min_value=0, max_value=90)) * DAY
    duration = draw(st.integers(min_value=1, max_value=3 * YEAR))
    granularity = draw(st.sampled_from(list(LinearGranularity)))
    return Schedule.linear(draw(amounts), start, start + duration, granularity)


@st.composite
def staged_schedules(draw):
    start = T0 + draw(st.integers(min_value=0, max_value=2 * YEAR))
    return Schedule.staged(draw(amounts), start)


schedule_lists = st.lists(st.one_of(linear_schedules(), staged_schedules()), min_size=1, max_size=10)

instants = st.lists(
    st.integers(min_value=-DAY, max_value=4 * YEAR), min_size=1, max_size=12
).map(lambda offsets: [T0 + o for o in sorted(offsets)])


def _open_position(schedules):
    system = deploy_voucher_system(ADMIN, time_provider=lambda: T0)
    schedule_set = ScheduleSet.of(schedules)
    system.fund(HOLDER, schedule_set.escrowed_total)
    escrowed = schedule_set.escrowed_total
    position_id = system.engine.create(HOLDER, schedule_set)

    # One receipt minted to the funder; custody grew by exactly the set total
    assert system.receipts.total_supply() == 1
    assert system.receipts.owner_of(position_id) == HOLDER
    assert system.engine.escrow.held == escrowed
    assert system.token.balance_of(HOLDER) == 0
    return system, position_id, escrowed


# ============================================================================
# PROPERTIES
# ============================================================================


class TestRedemptionProperties:
    @given(schedule_lists, instants)
    @settings(max_examples=75, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_accounting_is_sound_and_complete(self, schedules, times):
        system, position_id, escrowed = _open_position(schedules)
        engine = system.engine
        position = engine.get_position(position_id)

        cumulative = 0
        for at in times:
            try:
                cumulative += engine.redeem(HOLDER, position_id, now=at)
            except NoOpError:
                pass

            assert cumulative <= escrowed
            assert cumulative == sum(vested_amount(s, at) for s in position.schedules)
            assert system.token.balance_of(HOLDER) == cumulative
            assert engine.escrow.held == engine.outstanding_total()
            assert all(0 <= s.remaining_amount <= s.amount for s in position.schedules)

        assert position.escrowed_total == escrowed

    @given(schedule_lists, st.integers(min_value=0, max_value=4 * YEAR))
    @settings(max_examples=50, deadline=None)
    def test_redeem_is_idempotent_at_fixed_instant(self, schedules, offset):
        system, position_id, _ = _open_position(schedules)
        at = T0 + offset

        try:
            system.engine.redeem(HOLDER, position_id, now=at)
        except NoOpError:
            pass
        balance = system.token.balance_of(HOLDER)

        try:
            system.engine.redeem(HOLDER, position_id, now=at)
            raise AssertionError("second redemption at the same instant must be a no-op")
        except NoOpError:
            pass
        assert system.token.balance_of(HOLDER) == balance

    @given(st.one_of(linear_schedules(), staged_schedules()), st.integers(), st.integers())
    def test_vested_amount_is_monotonic_and_bounded(self, schedule, a, b):
        earlier, later = sorted((T0 + a % (5 * YEAR), T0 + b % (5 * YEAR)))
        low = vested_amount(schedule, earlier)
        high = vested_amount(schedule, later)
        assert 0 <= low <= high <= schedule.amount


# ============================================================================
# STATEFUL TESTING
# ============================================================================


class VoucherMachine(RuleBasedStateMachine):
    """
    Interleaves creates, redemptions, clock moves (including backwards) and
    receipt transfers, checking custody and per-position bounds throughout.
    """

    @initialize()
    def setup(self):
        self.system = deploy_voucher_system(ADMIN, time_provider=lambda: T0)
        self.holders = [derive_address(f"invariants:machine:{i}") for i in range(3)]
        self.now = T0
        self.redeemed = {}

    @rule(schedules=schedule_lists, owner=st.integers(min_value=0, max_value=2))
    def create(self, schedules, owner):
        holder = self.holders[owner]
        schedule_set = ScheduleSet.of(schedules)
        self.system.fund(holder, schedule_set.escrowed_total)
        position_id = self.system.engine.create(holder, schedule_set, now=self.now)
        self.redeemed[position_id] = 0

    @rule(step=st.integers(min_value=-YEAR, max_value=YEAR))
    def move_clock(self, step):
        self.now = max(T0, self.now + step)

    @rule(data=st.data())
    def redeem(self, data):
        if not self.redeemed:
            return
        position_id = data.draw(st.sampled_from(sorted(self.redeemed)))
        holder = self.system.engine.holder_of(position_id)
        try:
            self.redeemed[position_id] += self.system.engine.redeem(holder, position_id, now=self.now)
        except NoOpError:
            pass

    @rule(data=st.data(), target_index=st.integers(min_value=0, max_value=2))
    def transfer_receipt(self, data, target_index):
        if not self.redeemed:
            return
        position_id = data.draw(st.sampled_from(sorted(self.redeemed)))
        holder = self.system.engine.holder_of(position_id)
        target = self.holders[target_index]
        if target != holder:
            self.system.receipts.transfer_from(holder, holder, target, position_id)

    @invariant()
    def custody_matches_outstanding(self):
        engine = self.system.engine
        assert engine.escrow.held == engine.outstanding_total()

    @invariant()
    def never_over_redeemed(self):
        for position_id, redeemed in self.redeemed.items():
            position = self.system.engine.get_position(position_id)
            assert redeemed == position.released_total
            assert redeemed <= position.escrowed_total


VoucherMachine.TestCase.settings = settings(max_examples=25, stateful_step_count=20, deadline=None)
TestVoucherMachine = VoucherMachine.TestCase
