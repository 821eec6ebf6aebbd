"""
Staking pool operation layer.

Every mutating operation follows the same sequence:

1. validate preconditions (nothing has been touched yet),
2. settle the ledger to the current tick,
3. settle the caller's reward against the fresh accumulator,
4. apply the operation's own change and re-checkpoint the caller's debt,
5. move assets (stake first, reward payout last) and publish events.

Steps 2-5 run inside an atomic section: if anything raises, the ledger, the
caller's account and any stake transfer already made are put back, and the
buffered events are dropped.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

from stakepool.core import metrics
from stakepool.core.asset_ledger import AssetLedger
from stakepool.core.exceptions import (
    EndInPastError,
    InsufficientBalanceError,
    LockNotExpiredError,
    NoStakeError,
    NothingToWithdrawError,
    PoolClosedError,
    PoolNotOpenError,
    UnauthorizedError,
    ZeroAmountError,
    get_error_context,
)
from stakepool.core.time_source import TickProvider, read_tick
from stakepool.staking.events import EventLog, PoolEvent, PoolEventType
from stakepool.staking.ledger import AccountStore, PoolLedger, UserAccount
from stakepool.treasury.reward_treasury import RewardTreasury

if TYPE_CHECKING:
    from stakepool.core.config import PoolConfig

logger = logging.getLogger("stakepool.staking.pool")


class PoolStatus(Enum):
    """Derived lifecycle state; never stored."""

    PENDING = "pending"
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class _Operation:
    name: str
    user: str
    tick: int
    events: List[PoolEvent] = field(default_factory=list)
    transfers: List[Tuple[str, str, str, int]] = field(default_factory=list)

    def emit(self, event_type: PoolEventType, amount: int) -> None:
        self.events.append(PoolEvent(event_type=event_type, user=self.user, amount=amount, tick=self.tick))


class StakePool:
    def __init__(
        self,
        asset_ledger: AssetLedger,
        stake_asset: str,
        reward_asset: str,
        window_start: int,
        window_end: int,
        reward_rate_per_tick: int,
        owner: str,
        lock_duration: int = 0,
        tick_provider: TickProvider | None = None,
        name: str = "stakepool",
        address: str | None = None,
        event_log: EventLog | None = None,
    ):
        if not stake_asset or not reward_asset:
            raise ValueError("Stake and reward asset ids cannot be empty.")
        if not owner:
            raise ValueError("Pool owner cannot be empty.")
        for label, value in (
            ("Window start", window_start),
            ("Window end", window_end),
            ("Reward rate", reward_rate_per_tick),
            ("Lock duration", lock_duration),
        ):
            if not isinstance(value, int) or value < 0:
                raise ValueError(f"{label} must be a non-negative integer.")
        if window_end <= window_start:
            raise ValueError("Window end must be after window start.")

        self.name = name
        self.address = address or f"pool:{name}"
        self.owner = owner
        self.asset_ledger = asset_ledger
        self._tick_provider = tick_provider or (lambda: int(time.time()))
        self._lock = threading.RLock()

        current_tick = self.current_tick
        self.ledger = PoolLedger(
            stake_asset=stake_asset,
            reward_asset=reward_asset,
            window_start=window_start,
            window_end=window_end,
            reward_rate_per_tick=reward_rate_per_tick,
            lock_duration=lock_duration,
            last_settled_tick=max(current_tick, window_start),
        )
        self.accounts = AccountStore()
        self.treasury = RewardTreasury(asset_ledger, reward_asset, owner=owner, pool_address=self.address)
        self.events = event_log or EventLog()

        metrics.update_pool_gauges(self.name, 0, 0)
        logger.info(
            "StakePool %s initialized: window [%s, %s), rate %s/tick, lock %s ticks, stake %s, reward %s",
            self.name,
            window_start,
            window_end,
            reward_rate_per_tick,
            lock_duration,
            stake_asset,
            reward_asset,
        )

    @classmethod
    def from_config(
        cls,
        config: "PoolConfig",
        asset_ledger: AssetLedger,
        owner: str,
        tick_provider: TickProvider | None = None,
        event_log: EventLog | None = None,
    ) -> "StakePool":
        return cls(
            asset_ledger=asset_ledger,
            stake_asset=config.stake_asset,
            reward_asset=config.reward_asset,
            window_start=config.window_start,
            window_end=config.window_end,
            reward_rate_per_tick=config.reward_rate_per_tick,
            lock_duration=config.lock_duration,
            owner=owner,
            tick_provider=tick_provider,
            name=config.name,
            event_log=event_log,
        )

    # ==================== Views ====================

    @property
    def current_tick(self) -> int:
        return read_tick(self._tick_provider)

    @property
    def status(self) -> PoolStatus:
        tick = self.current_tick
        if tick < self.ledger.window_start:
            return PoolStatus.PENDING
        if tick < self.ledger.window_end:
            return PoolStatus.OPEN
        return PoolStatus.CLOSED

    def get_pending_reward(self, user: str) -> int:
        """
        Reward `user` would receive if settled now. Read-only and idempotent.

        A locked account stops earning at its own lock horizon, even while the
        window is still open.
        """
        with self._lock:
            account = self.accounts.get(user)
            if account is None or account.amount == 0:
                return 0
            projected = self.ledger.projected_acc_reward_per_share(
                self.current_tick, cap_tick=self.ledger.staking_end_tick(account)
            )
            return account.accrued(projected) - account.reward_debt

    def get_account(self, user: str) -> Dict[str, int]:
        with self._lock:
            account = self.accounts.get(user)
            return account.to_dict() if account else UserAccount().to_dict()

    def unlock_tick(self, user: str) -> Optional[int]:
        """Tick at which `user` may unstake, or None when the account carries no lock."""
        with self._lock:
            account = self.accounts.get(user)
            if account is None or self.ledger.lock_duration == 0 or account.stake_start_tick == 0:
                return None
            return account.stake_start_tick + self.ledger.lock_duration

    def pool_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "address": self.address,
                "owner": self.owner,
                "status": self.status.value,
                "current_tick": self.current_tick,
                "participants": len(self.accounts),
                "treasury_balance": self.treasury.balance,
                **self.ledger.to_dict(),
            }

    # ==================== Atomic section ====================

    @contextmanager
    def _operation(self, name: str, user: str) -> Iterator[_Operation]:
        with self._lock:
            op = _Operation(name=name, user=user, tick=self.current_tick)
            saved_ledger = replace(self.ledger)
            saved_account = self.accounts.get(user)
            if saved_account is not None:
                saved_account = replace(saved_account)
            try:
                yield op
            except Exception as exc:
                self._rollback(op, saved_ledger, saved_account)
                metrics.record_rejection(self.name, name, exc)
                logger.warning(
                    "Pool %s rejected %s by %s at tick %s: %s",
                    self.name,
                    name,
                    user,
                    op.tick,
                    exc,
                    extra={"event": f"pool.{name}.rejected", **get_error_context(exc)},
                )
                raise
            self.events.publish(op.events)
            metrics.update_pool_gauges(self.name, self.ledger.total_staked, self.ledger.acc_reward_per_share)

    def _rollback(self, op: _Operation, saved_ledger: PoolLedger, saved_account: Optional[UserAccount]) -> None:
        for asset, sender, recipient, amount in reversed(op.transfers):
            self.asset_ledger.transfer(asset, recipient, sender, amount)
        for f in fields(PoolLedger):
            setattr(self.ledger, f.name, getattr(saved_ledger, f.name))
        if saved_account is None:
            self.accounts.discard(op.user)
        else:
            account = self.accounts.get(op.user)
            if account is None:
                self.accounts.put(op.user, saved_account)
            else:
                for f in fields(UserAccount):
                    setattr(account, f.name, getattr(saved_account, f.name))

    def _transfer_stake(self, op: _Operation, sender: str, recipient: str, amount: int) -> None:
        self.asset_ledger.transfer(self.ledger.stake_asset, sender, recipient, amount)
        op.transfers.append((self.ledger.stake_asset, sender, recipient, amount))

    def _settle_account(self, account: UserAccount) -> int:
        """Checkpoints the account's unpaid reward and returns it. Ledger must be settled."""
        pending = account.accrued(self.ledger.acc_reward_per_share) - account.reward_debt
        if pending <= 0:
            return 0
        account.checkpoint(self.ledger.acc_reward_per_share)
        return pending

    def _pay_reward(self, op: _Operation, reward: int) -> None:
        if reward <= 0:
            return
        self.treasury.pay_out(self.address, op.user, reward)
        op.emit(PoolEventType.REWARD_CLAIM, reward)
        metrics.record_reward_paid(self.name, reward)
        logger.info(
            "Paid %s %s reward to %s at tick %s",
            reward,
            self.ledger.reward_asset,
            op.user,
            op.tick,
            extra={"event": "pool.reward_claim", "user": op.user, "amount": reward},
        )

    def _check_lock(self, account: Optional[UserAccount], tick: int) -> None:
        if account is None:
            return
        unlock_at = self.ledger.staking_end_tick(account)
        if unlock_at is not None and tick < unlock_at:
            raise LockNotExpiredError(
                f"Stake is locked until tick {unlock_at} (current tick {tick}).",
                unlock_tick=unlock_at,
            )

    def _require_owner(self, caller: str, operation: str) -> None:
        if caller != self.owner:
            raise UnauthorizedError(
                f"Caller {caller} is not the owner of pool {self.name}.",
                details={"caller": caller, "operation": operation},
            )

    @staticmethod
    def _validate_quantity(value: int, label: str) -> None:
        if not isinstance(value, int) or value < 0:
            raise ValueError(f"{label} must be a non-negative integer.")

    # ==================== Participant operations ====================

    def deposit(self, user: str, amount: int) -> None:
        """Stakes `amount` units, paying out any reward earned so far first."""
        if not user:
            raise ValueError("User cannot be empty.")
        self._validate_quantity(amount, "Deposit amount")

        with self._operation("deposit", user) as op:
            if amount == 0:
                raise ZeroAmountError("Deposit amount is zero.")
            if op.tick < self.ledger.window_start:
                raise PoolNotOpenError(
                    f"Pool {self.name} opens at tick {self.ledger.window_start}.",
                    details={"current_tick": op.tick},
                )
            if op.tick >= self.ledger.window_end:
                raise PoolClosedError(
                    f"Pool {self.name} closed at tick {self.ledger.window_end}.",
                    details={"current_tick": op.tick},
                )

            self.ledger.settle(op.tick)
            account = self.accounts.get_or_create(user)
            reward = self._settle_account(account) if account.amount > 0 else 0

            account.amount += amount
            if self.ledger.lock_duration > 0:
                account.stake_start_tick = op.tick
            account.checkpoint(self.ledger.acc_reward_per_share)
            self.ledger.total_staked += amount

            self._transfer_stake(op, user, self.address, amount)
            op.emit(PoolEventType.DEPOSIT, amount)
            self._pay_reward(op, reward)

            metrics.record_stake_flow(self.name, "deposit", amount)
            logger.info(
                "Deposit of %s by %s at tick %s (stake %s, pool total %s)",
                amount,
                user,
                op.tick,
                account.amount,
                self.ledger.total_staked,
                extra={"event": "pool.deposit", "user": user, "amount": amount},
            )

    def withdraw(self, user: str, amount: int) -> None:
        """Unstakes `amount` units and pays out the reward earned so far."""
        if not user:
            raise ValueError("User cannot be empty.")
        self._validate_quantity(amount, "Withdraw amount")

        with self._operation("withdraw", user) as op:
            if amount == 0:
                raise ZeroAmountError("Withdraw amount is zero.")
            account = self.accounts.get(user)
            self._check_lock(account, op.tick)
            staked = account.amount if account else 0
            if staked < amount:
                raise InsufficientBalanceError(
                    f"{user} has {staked} staked, cannot withdraw {amount}.",
                    details={"staked": staked, "requested": amount},
                )

            self.ledger.settle(op.tick)
            reward = self._settle_account(account)

            account.amount -= amount
            account.checkpoint(self.ledger.acc_reward_per_share)
            if account.amount == 0:
                account.stake_start_tick = 0
            self.ledger.total_staked -= amount

            self._transfer_stake(op, self.address, user, amount)
            op.emit(PoolEventType.WITHDRAW, amount)
            self._pay_reward(op, reward)

            metrics.record_stake_flow(self.name, "withdraw", amount)
            logger.info(
                "Withdrawal of %s by %s at tick %s (stake %s, pool total %s)",
                amount,
                user,
                op.tick,
                account.amount,
                self.ledger.total_staked,
                extra={"event": "pool.withdraw", "user": user, "amount": amount},
            )

    def emergency_withdraw(self, user: str) -> int:
        """
        Returns the caller's full stake without settling reward.

        Unpaid reward for the account is forfeited. Returns the amount unstaked.
        """
        if not user:
            raise ValueError("User cannot be empty.")

        with self._operation("emergency_withdraw", user) as op:
            account = self.accounts.get(user)
            if account is None or account.amount == 0:
                raise NothingToWithdrawError(f"{user} has nothing staked.")
            self._check_lock(account, op.tick)

            amount = account.amount
            account.amount = 0
            account.reward_debt = 0
            account.stake_start_tick = 0
            self.ledger.total_staked -= amount

            self._transfer_stake(op, self.address, user, amount)
            op.emit(PoolEventType.EMERGENCY_WITHDRAW, amount)

            metrics.record_stake_flow(self.name, "emergency", amount)
            logger.warning(
                "Emergency withdrawal of %s by %s at tick %s; unpaid reward forfeited",
                amount,
                user,
                op.tick,
                extra={"event": "pool.emergency_withdraw", "user": user, "amount": amount},
            )
            return amount

    def claim_reward(self, user: str) -> int:
        """Pays out everything `user` has earned so far. Returns the amount paid."""
        if not user:
            raise ValueError("User cannot be empty.")

        with self._operation("claim_reward", user) as op:
            account = self.accounts.get(user)
            if account is None or account.amount == 0:
                raise NoStakeError(f"{user} has no stake in pool {self.name}.")

            self.ledger.settle(op.tick)
            reward = self._settle_account(account)
            self._pay_reward(op, reward)
            return reward

    # ==================== Administrative operations ====================

    def set_reward_rate(self, caller: str, reward_rate_per_tick: int) -> None:
        """Replaces the reward rate. Ticks already elapsed keep the old rate."""
        self._validate_quantity(reward_rate_per_tick, "Reward rate")

        with self._operation("set_reward_rate", caller) as op:
            self._require_owner(caller, "set_reward_rate")
            self.ledger.settle(op.tick)
            previous = self.ledger.reward_rate_per_tick
            self.ledger.reward_rate_per_tick = reward_rate_per_tick
            logger.info(
                "Pool %s reward rate changed from %s to %s at tick %s",
                self.name,
                previous,
                reward_rate_per_tick,
                op.tick,
                extra={"event": "pool.set_reward_rate", "rate": reward_rate_per_tick},
            )

    def set_window_end(self, caller: str, window_end: int) -> None:
        """
        Moves the end of the reward window.

        Reopening a closed pool does not credit the ticks between the old end
        and now.
        """
        self._validate_quantity(window_end, "Window end")

        with self._operation("set_window_end", caller) as op:
            self._require_owner(caller, "set_window_end")
            if window_end < op.tick:
                raise EndInPastError(
                    f"New window end {window_end} is before the current tick {op.tick}.",
                    details={"window_end": window_end, "current_tick": op.tick},
                )

            self.ledger.settle(op.tick)
            if self.ledger.window_end < op.tick:
                self.ledger.last_settled_tick = op.tick
            previous = self.ledger.window_end
            self.ledger.window_end = window_end
            logger.info(
                "Pool %s window end moved from %s to %s at tick %s",
                self.name,
                previous,
                window_end,
                op.tick,
                extra={"event": "pool.set_window_end", "window_end": window_end},
            )

    def set_lock_duration(self, caller: str, lock_duration: int) -> None:
        """Replaces the lock duration. Existing stake start ticks are left as they are."""
        self._validate_quantity(lock_duration, "Lock duration")

        with self._operation("set_lock_duration", caller):
            self._require_owner(caller, "set_lock_duration")
            self.ledger.lock_duration = lock_duration
            logger.info(
                "Pool %s lock duration set to %s ticks",
                self.name,
                lock_duration,
                extra={"event": "pool.set_lock_duration", "lock_duration": lock_duration},
            )

    def add_reward_funds(self, caller: str, amount: int) -> int:
        """Moves reward units from `caller` into the treasury. Returns the treasury balance."""
        with self._lock:
            return self.treasury.deposit(caller, amount)

    def remove_reward_funds(self, caller: str, amount: int) -> int:
        """Returns reward units from the treasury to the owner. Owner only."""
        with self._lock:
            self._require_owner(caller, "remove_reward_funds")
            return self.treasury.withdraw(caller, amount)

    # ==================== State export ====================

    def export_state(self) -> Dict[str, Any]:
        """Persisted state layout: the ledger fields plus every account."""
        with self._lock:
            return {
                "name": self.name,
                "address": self.address,
                "owner": self.owner,
                "ledger": self.ledger.to_dict(),
                "accounts": self.accounts.to_dict(),
            }

    def load_state(self, caller: str, state: Dict[str, Any]) -> None:
        """Replaces ledger and accounts with a previously exported state. Owner only."""
        with self._lock:
            self._require_owner(caller, "load_state")
            ledger = PoolLedger.from_dict(state["ledger"])
            if (ledger.stake_asset, ledger.reward_asset) != (self.ledger.stake_asset, self.ledger.reward_asset):
                raise ValueError("Exported state belongs to a pool with different assets.")
            accounts = AccountStore.from_dict(state.get("accounts", {}))
            if accounts.total_amount() != ledger.total_staked:
                raise ValueError("Exported accounts do not add up to the ledger's total stake.")
            self.ledger = ledger
            self.accounts = accounts
            metrics.update_pool_gauges(self.name, ledger.total_staked, ledger.acc_reward_per_share)
            logger.info(
                "Pool %s state loaded: %s accounts, total staked %s",
                self.name,
                len(accounts),
                ledger.total_staked,
                extra={"event": "pool.load_state"},
            )
