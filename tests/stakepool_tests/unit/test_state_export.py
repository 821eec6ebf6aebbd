import pytest

from stakepool.core.exceptions import UnauthorizedError

OWNER = "0xOwner"
BOB = "0xBob"
ALICE = "0xAlice"


@pytest.fixture
def busy_pool(pool, clock):
    clock.advance_to(50)
    pool.deposit(BOB, 1000)
    clock.advance(3)
    pool.deposit(ALICE, 3000)
    clock.advance(4)
    return pool


def test_export_layout(busy_pool):
    state = busy_pool.export_state()
    assert state["owner"] == OWNER
    assert state["ledger"]["total_staked"] == 4000
    assert state["ledger"]["last_settled_tick"] == 53
    assert set(state["accounts"]) == {BOB, ALICE}
    assert state["accounts"][ALICE]["amount"] == 3000


def test_pool_state_view(busy_pool):
    view = busy_pool.pool_state()
    assert view["status"] == "open"
    assert view["current_tick"] == 57
    assert view["participants"] == 2
    assert view["treasury_balance"] == busy_pool.treasury.balance


def test_loaded_state_reproduces_pending_rewards(busy_pool, make_pool):
    state = busy_pool.export_state()
    expected = {user: busy_pool.get_pending_reward(user) for user in (BOB, ALICE)}

    restored = make_pool(name="restored")
    restored.load_state(OWNER, state)
    assert {user: restored.get_pending_reward(user) for user in (BOB, ALICE)} == expected
    assert restored.ledger == busy_pool.ledger


def test_load_state_is_owner_only(busy_pool, make_pool):
    restored = make_pool(name="restored")
    with pytest.raises(UnauthorizedError):
        restored.load_state(BOB, busy_pool.export_state())


def test_load_state_rejects_inconsistent_totals(busy_pool, make_pool):
    state = busy_pool.export_state()
    state["ledger"]["total_staked"] += 1
    restored = make_pool(name="restored")
    with pytest.raises(ValueError, match="add up"):
        restored.load_state(OWNER, state)
    assert restored.ledger.total_staked == 0


def test_load_state_rejects_other_assets(busy_pool, make_pool):
    state = busy_pool.export_state()
    state["ledger"]["reward_asset"] = "OTHER"
    with pytest.raises(ValueError, match="different assets"):
        make_pool(name="restored").load_state(OWNER, state)
