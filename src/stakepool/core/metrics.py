"""
Staking pool instrumentation.

Provides Prometheus metrics that track stake flowing in and out of each pool
and the reward it pays, with helper functions that are safe to call from the
settlement path.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

stake_flow_counter = Counter(
    "stakepool_stake_units_total",
    "Total stake units moved through the pool",
    ["pool", "direction"],
)

reward_paid_counter = Counter(
    "stakepool_reward_paid_units_total", "Total reward units paid out to participants", ["pool"]
)

operation_rejections = Counter(
    "stakepool_operation_rejections_total",
    "Pool operations rejected with an error",
    ["pool", "operation", "error"],
)

total_staked_gauge = Gauge("stakepool_total_staked_units", "Stake units currently held by the pool", ["pool"])

acc_reward_gauge = Gauge(
    "stakepool_acc_reward_per_share", "Current scaled reward accumulator value", ["pool"]
)


def record_stake_flow(pool: str, direction: str, amount: int) -> None:
    """Count stake entering (`deposit`) or leaving (`withdraw`, `emergency`) a pool."""
    if amount <= 0:
        return
    stake_flow_counter.labels(pool=pool, direction=direction).inc(amount)


def record_reward_paid(pool: str, amount: int) -> None:
    if amount <= 0:
        return
    reward_paid_counter.labels(pool=pool).inc(amount)


def record_rejection(pool: str, operation: str, exc: Exception) -> None:
    operation_rejections.labels(pool=pool, operation=operation, error=type(exc).__name__).inc()


def update_pool_gauges(pool: str, total_staked: int, acc_reward_per_share: int) -> None:
    """Refresh the per-pool gauges from the ledger."""
    total_staked_gauge.labels(pool=pool).set(total_staked)
    acc_reward_gauge.labels(pool=pool).set(acc_reward_per_share)
