"""
Staking pool: reward accumulator, account store and operation layer.
"""

from stakepool.staking.ledger import SCALE, AccountStore, PoolLedger, UserAccount
from stakepool.staking.pool import PoolStatus, StakePool

__all__ = [
    "SCALE",
    "AccountStore",
    "PoolLedger",
    "PoolStatus",
    "StakePool",
    "UserAccount",
]
