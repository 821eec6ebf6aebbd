"""Custodial reward treasury bound to a single staking pool."""

from stakepool.treasury.reward_treasury import RewardTreasury

__all__ = ["RewardTreasury"]
