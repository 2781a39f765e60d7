import sys
from pathlib import Path

import pytest

# Make `voucher` importable from a source checkout without installation.
project_root = Path(__file__).resolve().parents[2]
src_path = project_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from voucher.core.deployment import deploy_voucher_system  # noqa: E402
from voucher.core.identifiers import derive_address  # noqa: E402
from voucher.core.vesting import DAY, LinearGranularity, Schedule, ScheduleSet  # noqa: E402

T0 = 1_700_000_000
YEAR = 365 * DAY


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def admin():
    return derive_address("test:admin")


@pytest.fixture
def holder():
    return derive_address("test:holder")


@pytest.fixture
def other():
    return derive_address("test:other")


@pytest.fixture
def system(admin):
    """Fully provisioned system with the clock pinned to T0."""
    return deploy_voucher_system(admin, time_provider=lambda: T0)


@pytest.fixture
def unprovisioned_system(admin):
    """System whose engine holds no MINTER/WRITER capability."""
    return deploy_voucher_system(admin, time_provider=lambda: T0, grant_capabilities=False)


@pytest.fixture
def quarterly_schedule():
    return Schedule.linear(100_000, T0, T0 + YEAR, LinearGranularity.QUARTERLY)


@pytest.fixture
def mixed_set():
    """Quarterly linear 100000 plus a staged 50000 cliff at T0 + 30 days."""
    return ScheduleSet.of([
        Schedule.linear(100_000, T0, T0 + YEAR, LinearGranularity.QUARTERLY),
        Schedule.staged(50_000, T0 + 30 * DAY),
    ])
