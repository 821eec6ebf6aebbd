"""
Pool ledger and account store.

The ledger keeps a lazily advanced accumulator of reward per staked unit
(`acc_reward_per_share`, fixed point with `SCALE`). Each account records the
share of that accumulator it has already been paid (`reward_debt`), so an
account's unpaid reward is always

    amount * acc_reward_per_share // SCALE - reward_debt

and no operation has to touch any account other than the caller's.

All arithmetic is integer floor division. Truncation leaves a small amount of
reward ("dust") undistributed on every settlement; it is never redistributed.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger("stakepool.staking.ledger")

SCALE = 10**12


@dataclass
class UserAccount:
    amount: int = 0
    reward_debt: int = 0
    stake_start_tick: int = 0

    def accrued(self, acc_reward_per_share: int) -> int:
        """Total reward this stake has earned against the given accumulator value."""
        return self.amount * acc_reward_per_share // SCALE

    def checkpoint(self, acc_reward_per_share: int) -> None:
        """Marks everything earned up to `acc_reward_per_share` as paid."""
        self.reward_debt = self.accrued(acc_reward_per_share)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserAccount":
        return cls(
            amount=int(data.get("amount", 0)),
            reward_debt=int(data.get("reward_debt", 0)),
            stake_start_tick=int(data.get("stake_start_tick", 0)),
        )


@dataclass
class PoolLedger:
    stake_asset: str
    reward_asset: str
    window_start: int
    window_end: int
    reward_rate_per_tick: int
    lock_duration: int = 0
    last_settled_tick: int = 0
    acc_reward_per_share: int = 0
    total_staked: int = 0

    def _accumulate(self, bounded_tick: int) -> int:
        """Accumulator value after accruing up to `bounded_tick` from the last settlement."""
        if bounded_tick <= self.last_settled_tick or self.total_staked == 0:
            return self.acc_reward_per_share
        reward = self.reward_rate_per_tick * (bounded_tick - self.last_settled_tick)
        return self.acc_reward_per_share + reward * SCALE // self.total_staked

    def settle(self, current_tick: int) -> None:
        """
        Advances the accumulator to `min(current_tick, window_end)`.

        With nothing staked only `last_settled_tick` moves, so ticks without
        stake are never paid out to later depositors.
        """
        bounded_tick = min(current_tick, self.window_end)
        if bounded_tick <= self.last_settled_tick:
            return
        self.acc_reward_per_share = self._accumulate(bounded_tick)
        self.last_settled_tick = bounded_tick

    def projected_acc_reward_per_share(self, current_tick: int, cap_tick: Optional[int] = None) -> int:
        """Accumulator value a settlement at `current_tick` would produce, without mutating."""
        bounded_tick = min(current_tick, self.window_end)
        if cap_tick is not None:
            bounded_tick = min(bounded_tick, cap_tick)
        return self._accumulate(bounded_tick)

    def staking_end_tick(self, account: UserAccount) -> Optional[int]:
        """Lock horizon of a locked account, or None when it earns without a cap."""
        if self.lock_duration > 0 and account.stake_start_tick > 0:
            return account.stake_start_tick + self.lock_duration
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoolLedger":
        return cls(
            stake_asset=str(data["stake_asset"]),
            reward_asset=str(data["reward_asset"]),
            window_start=int(data["window_start"]),
            window_end=int(data["window_end"]),
            reward_rate_per_tick=int(data["reward_rate_per_tick"]),
            lock_duration=int(data.get("lock_duration", 0)),
            last_settled_tick=int(data.get("last_settled_tick", 0)),
            acc_reward_per_share=int(data.get("acc_reward_per_share", 0)),
            total_staked=int(data.get("total_staked", 0)),
        )


class AccountStore:
    """Participant identity to `UserAccount`. Entries are created on first deposit and never removed."""

    def __init__(self):
        self._accounts: Dict[str, UserAccount] = {}

    def __contains__(self, user: str) -> bool:
        return user in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self) -> Iterator[str]:
        return iter(self._accounts)

    def get(self, user: str) -> Optional[UserAccount]:
        return self._accounts.get(user)

    def get_or_create(self, user: str) -> UserAccount:
        account = self._accounts.get(user)
        if account is None:
            account = UserAccount()
            self._accounts[user] = account
            logger.debug("Created account for %s", user)
        return account

    def put(self, user: str, account: UserAccount) -> None:
        self._accounts[user] = account

    def discard(self, user: str) -> None:
        self._accounts.pop(user, None)

    def total_amount(self) -> int:
        """Sum of all staked amounts. Diagnostic only; pool operations never call it."""
        return sum(account.amount for account in self._accounts.values())

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {user: account.to_dict() for user, account in self._accounts.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, Any]]) -> "AccountStore":
        store = cls()
        for user, entry in data.items():
            store.put(user, UserAccount.from_dict(entry))
        return store
