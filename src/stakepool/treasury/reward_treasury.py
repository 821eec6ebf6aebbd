from __future__ import annotations

import logging
from typing import Any, Dict

from stakepool.core.asset_ledger import AssetLedger
from stakepool.core.exceptions import InsufficientFundsError, UnauthorizedError

logger = logging.getLogger("stakepool.treasury.reward_treasury")


class RewardTreasury:
    """
    Capability-gated holder of undistributed reward funds.

    The treasury owns a single balance of the reward asset in the asset
    ledger. Anyone may fund it, only the owner may take funds back, and only
    the pool it was created for may pay rewards out.
    """

    def __init__(
        self,
        asset_ledger: AssetLedger,
        reward_asset: str,
        owner: str,
        pool_address: str,
        address: str | None = None,
    ):
        if not reward_asset:
            raise ValueError("Reward asset cannot be empty.")
        if not owner:
            raise ValueError("Treasury owner cannot be empty.")
        if not pool_address:
            raise ValueError("Pool address cannot be empty.")

        self.asset_ledger = asset_ledger
        self.reward_asset = reward_asset
        self.owner = owner
        self.pool_address = pool_address
        self.address = address or f"{pool_address}:treasury"
        self.total_paid_out = 0

        logger.info(
            "RewardTreasury %s initialized for pool %s (asset %s, owner %s)",
            self.address,
            self.pool_address,
            self.reward_asset,
            self.owner,
        )

    @property
    def balance(self) -> int:
        return self.asset_ledger.balance_of(self.reward_asset, self.address)

    @staticmethod
    def _validate_amount(amount: int) -> None:
        if not isinstance(amount, int) or amount <= 0:
            raise ValueError("Treasury amount must be a positive integer.")

    def _require_funds(self, amount: int) -> None:
        available = self.balance
        if amount > available:
            raise InsufficientFundsError(
                f"Treasury {self.address} holds {available} {self.reward_asset}, cannot release {amount}.",
                available=available,
                requested=amount,
            )

    def deposit(self, sender: str, amount: int) -> int:
        """Moves reward units from `sender` into the treasury. Returns the new balance."""
        self._validate_amount(amount)
        self.asset_ledger.transfer(self.reward_asset, sender, self.address, amount)
        logger.info(
            "Treasury funded with %s %s by %s (balance %s)",
            amount,
            self.reward_asset,
            sender,
            self.balance,
            extra={"event": "treasury.deposit", "sender": sender, "amount": amount},
        )
        return self.balance

    def withdraw(self, caller: str, amount: int) -> int:
        """Returns reward units to the owner. Owner only."""
        if caller != self.owner:
            raise UnauthorizedError(
                f"Caller {caller} is not the treasury owner.",
                details={"caller": caller, "operation": "withdraw"},
            )
        self._validate_amount(amount)
        self._require_funds(amount)
        self.asset_ledger.transfer(self.reward_asset, self.address, self.owner, amount)
        logger.info(
            "Treasury released %s %s to owner %s (balance %s)",
            amount,
            self.reward_asset,
            self.owner,
            self.balance,
            extra={"event": "treasury.withdraw", "amount": amount},
        )
        return self.balance

    def pay_out(self, caller: str, to: str, amount: int) -> None:
        """Sends earned reward to a participant. Callable only by the bound pool."""
        if caller != self.pool_address:
            raise UnauthorizedError(
                f"Caller {caller} is not the pool bound to treasury {self.address}.",
                details={"caller": caller, "operation": "pay_out"},
            )
        self._validate_amount(amount)
        self._require_funds(amount)
        self.asset_ledger.transfer(self.reward_asset, self.address, to, amount)
        self.total_paid_out += amount
        logger.debug("Treasury paid %s %s to %s", amount, self.reward_asset, to)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "pool_address": self.pool_address,
            "owner": self.owner,
            "reward_asset": self.reward_asset,
            "balance": self.balance,
            "total_paid_out": self.total_paid_out,
        }
