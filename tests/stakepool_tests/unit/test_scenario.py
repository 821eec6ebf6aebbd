from pathlib import Path

import pytest

from stakepool.core.exceptions import ConfigurationError, PoolClosedError
from stakepool.staking.scenario import Scenario, ScenarioStep, run_scenario

SCENARIO_DIR = Path(__file__).resolve().parents[3] / "scenarios"


def _scenario(steps, **extra):
    data = {
        "pool": {
            "preset": "single",
            "stake_asset": "STK",
            "reward_asset": "RWD",
            "window_start": 10,
            "window_end": 20,
            "reward_rate_per_tick": 100,
        },
        "balances": {"bob": 50},
        "steps": steps,
    }
    data.update(extra)
    return Scenario.from_dict(data, environ={})


def test_proportional_scenario_file():
    report = run_scenario(Scenario.load(SCENARIO_DIR / "proportional.yaml", environ={}))
    steps = report["steps"]
    assert steps[0]["ok"] is False
    assert steps[0]["error"] == "PoolNotOpenError"
    assert [s["result"] for s in steps[3:5]] == [2500, 1500]
    assert steps[6]["result"] == 51000
    assert steps[8]["error"] == "PoolClosedError"

    bob = report["accounts"]["bob"]
    assert bob["reward_balance"] == 119000
    assert bob["stake_balance"] == 1000
    assert report["accounts"]["alice"]["pending_reward"] == 300000
    assert report["pool"]["status"] == "closed"


def test_locked_scenario_file():
    report = run_scenario(Scenario.load(SCENARIO_DIR / "locked.yaml", environ={}))
    errors = [s.get("error") for s in report["steps"][1:3]]
    assert errors == ["LockNotExpiredError", "LockNotExpiredError"]
    assert [s["result"] for s in report["steps"][3:5]] == [200000, 200000]
    assert report["accounts"]["bob"]["reward_balance"] == 400000


def test_strict_mode_raises_first_rejection():
    scenario = _scenario([{"tick": 25, "action": "deposit", "user": "bob", "amount": 1}])
    with pytest.raises(PoolClosedError):
        run_scenario(scenario, strict=True)


def test_explicit_funding_replaces_scheduled_reward():
    scenario = _scenario(
        [
            {"tick": 10, "action": "deposit", "user": "bob", "amount": 50},
            {"tick": 15, "action": "claim_reward", "user": "bob"},
        ],
        funding=100,
    )
    report = run_scenario(scenario)
    claim = report["steps"][1]
    assert claim["ok"] is False
    assert claim["error"] == "InsufficientFundsError"
    assert report["pool"]["treasury_balance"] == 100


def test_events_are_reported():
    scenario = _scenario([{"tick": 10, "action": "deposit", "user": "bob", "amount": 50}])
    report = run_scenario(scenario)
    assert report["events"] == [{"event": "Deposit", "user": "bob", "amount": 50, "tick": 10}]


def test_owner_actions_default_to_scenario_owner():
    scenario = _scenario([{"tick": 12, "action": "set_window_end", "value": 30}], owner="admin")
    assert scenario.steps[0].user == "admin"
    report = run_scenario(scenario)
    assert report["pool"]["window_end"] == 30


def test_ticks_must_not_go_backwards():
    with pytest.raises(ConfigurationError, match="backwards"):
        _scenario(
            [
                {"tick": 12, "action": "pending", "user": "bob"},
                {"tick": 11, "action": "pending", "user": "bob"},
            ]
        )


@pytest.mark.parametrize(
    "step, message",
    [
        ({"tick": 1, "action": "stake"}, "unknown action"),
        ({"action": "pending"}, "tick"),
        ({"tick": 1, "action": "deposit", "user": "bob"}, "amount"),
    ],
)
def test_invalid_steps(step, message):
    with pytest.raises(ConfigurationError, match=message):
        ScenarioStep.from_dict(step, 0, "owner")
