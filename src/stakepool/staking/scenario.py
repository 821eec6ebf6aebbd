"""
Scenario replay for staking pools.

A scenario describes a pool, the balances participants start with, and a list
of timed actions. Replaying it drives a fresh in-memory pool through the
actions in tick order and reports what each one did, which makes it easy to
check reward arithmetic by hand or from the CLI.

Example (YAML):

    pool:
      preset: single
      window_start: 10
      window_end: 110
      reward_rate_per_tick: 2000
    owner: owner
    balances: {bob: 1000, alice: 3000}
    steps:
      - {tick: 10, action: deposit, user: bob, amount: 1000}
      - {tick: 11, action: deposit, user: alice, amount: 3000}
      - {tick: 12, action: pending, user: bob}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from stakepool.core.asset_ledger import AssetLedger
from stakepool.core.config import PoolConfig, build_pool_config, read_config_file
from stakepool.core.exceptions import ConfigurationError, StakePoolError
from stakepool.core.time_source import ManualTickSource
from stakepool.staking.pool import StakePool

logger = logging.getLogger("stakepool.staking.scenario")

# action -> whether it needs a quantity
ACTIONS = {
    "deposit": True,
    "withdraw": True,
    "emergency_withdraw": False,
    "claim_reward": False,
    "pending": False,
    "set_reward_rate": True,
    "set_window_end": True,
    "set_lock_duration": True,
    "add_reward_funds": True,
    "remove_reward_funds": True,
}


@dataclass
class ScenarioStep:
    tick: int
    action: str
    user: str
    amount: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int, default_user: str) -> "ScenarioStep":
        if not isinstance(data, dict):
            raise ConfigurationError(f"Step {index} must be a mapping.")
        action = data.get("action")
        if action not in ACTIONS:
            raise ConfigurationError(
                f"Step {index}: unknown action {action!r}. Valid: {', '.join(sorted(ACTIONS))}."
            )
        try:
            tick = int(data["tick"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Step {index}: an integer 'tick' is required.") from exc

        amount = data.get("amount", data.get("value"))
        if ACTIONS[action]:
            try:
                amount = int(amount)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"Step {index}: action {action} needs an integer amount.") from exc
        return cls(tick=tick, action=action, user=str(data.get("user", default_user)), amount=amount)


@dataclass
class Scenario:
    pool: PoolConfig
    owner: str = "owner"
    start_tick: int = 0
    funding: Optional[int] = None
    balances: Dict[str, int] = field(default_factory=dict)
    steps: List[ScenarioStep] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> "Scenario":
        pool_section = dict(data.get("pool") or {})
        preset = pool_section.pop("preset", None)
        pool = build_pool_config(preset=preset, overrides=pool_section, environ=environ)
        owner = str(data.get("owner", "owner"))

        steps = [ScenarioStep.from_dict(step, i, owner) for i, step in enumerate(data.get("steps") or [])]
        start_tick = int(data.get("start_tick", 0))
        for i, step in enumerate(steps):
            previous = steps[i - 1].tick if i else start_tick
            if step.tick < previous:
                raise ConfigurationError(
                    f"Step {i}: tick {step.tick} goes backwards from {previous}; ticks are monotonic."
                )

        funding = data.get("funding")
        return cls(
            pool=pool,
            owner=owner,
            start_tick=start_tick,
            funding=None if funding is None else int(funding),
            balances={str(user): int(amount) for user, amount in (data.get("balances") or {}).items()},
            steps=steps,
        )

    @classmethod
    def load(cls, path: str | Path, environ: Optional[Dict[str, str]] = None) -> "Scenario":
        return cls.from_dict(read_config_file(path), environ=environ)


def _apply(pool: StakePool, step: ScenarioStep) -> Any:
    if step.action == "deposit":
        return pool.deposit(step.user, step.amount)
    if step.action == "withdraw":
        return pool.withdraw(step.user, step.amount)
    if step.action == "emergency_withdraw":
        return pool.emergency_withdraw(step.user)
    if step.action == "claim_reward":
        return pool.claim_reward(step.user)
    if step.action == "pending":
        return pool.get_pending_reward(step.user)
    if step.action == "set_reward_rate":
        return pool.set_reward_rate(step.user, step.amount)
    if step.action == "set_window_end":
        return pool.set_window_end(step.user, step.amount)
    if step.action == "set_lock_duration":
        return pool.set_lock_duration(step.user, step.amount)
    if step.action == "add_reward_funds":
        return pool.add_reward_funds(step.user, step.amount)
    return pool.remove_reward_funds(step.user, step.amount)


def run_scenario(scenario: Scenario, strict: bool = False) -> Dict[str, Any]:
    """
    Replays `scenario` against a fresh pool.

    Rejected actions are recorded with their error kind and replay continues,
    unless `strict` is set, in which case the first rejection is raised.
    """
    assets = AssetLedger()
    clock = ManualTickSource(scenario.start_tick)
    pool = StakePool.from_config(scenario.pool, assets, owner=scenario.owner, tick_provider=clock)

    for user, amount in scenario.balances.items():
        assets.mint(scenario.pool.stake_asset, user, amount)
    funding = scenario.pool.scheduled_reward if scenario.funding is None else scenario.funding
    if funding > 0:
        assets.mint(scenario.pool.reward_asset, scenario.owner, funding)
        pool.add_reward_funds(scenario.owner, funding)

    results: List[Dict[str, Any]] = []
    for step in scenario.steps:
        clock.advance_to(step.tick)
        entry: Dict[str, Any] = {"tick": step.tick, "action": step.action, "user": step.user}
        if step.amount is not None:
            entry["amount"] = step.amount
        try:
            entry["result"] = _apply(pool, step)
            entry["ok"] = True
        except (StakePoolError, ValueError) as exc:
            if strict:
                raise
            entry["ok"] = False
            entry["error"] = type(exc).__name__
            entry["message"] = getattr(exc, "message", str(exc))
        results.append(entry)

    participants = sorted(set(scenario.balances) | set(pool.accounts))
    accounts = {}
    for user in participants:
        accounts[user] = {
            **pool.get_account(user),
            "pending_reward": pool.get_pending_reward(user),
            "stake_balance": assets.balance_of(scenario.pool.stake_asset, user),
            "reward_balance": assets.balance_of(scenario.pool.reward_asset, user),
        }

    logger.info(
        "Scenario for pool %s replayed: %s steps, %s rejected",
        pool.name,
        len(results),
        sum(1 for r in results if not r["ok"]),
    )
    return {
        "pool": pool.pool_state(),
        "steps": results,
        "accounts": accounts,
        "events": [event.to_dict() for event in pool.events.events],
    }
