import sys
from pathlib import Path

import pytest

# Ensure the src directory is importable before collection runs.
project_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(project_root / "src"))

from stakepool.core.asset_ledger import AssetLedger  # noqa: E402
from stakepool.core.time_source import ManualTickSource  # noqa: E402
from stakepool.staking.pool import StakePool  # noqa: E402

OWNER = "0xOwner"
BOB = "0xBob"
ALICE = "0xAlice"
NON_OWNER = "0xNonOwner"

STAKE = "STK"
REWARD = "RWD"
REWARD_PER_TICK = 2000


@pytest.fixture
def clock():
    return ManualTickSource(0)


@pytest.fixture
def assets():
    ledger = AssetLedger()
    ledger.mint(STAKE, OWNER, 1_000_000_000)
    ledger.mint(REWARD, OWNER, 1_000_000_000)
    for user in (BOB, ALICE):
        ledger.mint(STAKE, user, 10_000)
    return ledger


@pytest.fixture
def make_pool(assets, clock):
    """Factory for pools opening at tick 50 and closing at tick 150 by default."""

    def _make(
        window_start: int = 50,
        window_end: int = 150,
        rate: int = REWARD_PER_TICK,
        lock_duration: int = 0,
        fund: bool = True,
        name: str = "test",
    ) -> StakePool:
        pool = StakePool(
            asset_ledger=assets,
            stake_asset=STAKE,
            reward_asset=REWARD,
            window_start=window_start,
            window_end=window_end,
            reward_rate_per_tick=rate,
            owner=OWNER,
            lock_duration=lock_duration,
            tick_provider=clock,
            name=name,
        )
        if fund:
            pool.add_reward_funds(OWNER, (window_end - window_start) * rate)
        return pool

    return _make


@pytest.fixture
def pool(make_pool):
    return make_pool()
