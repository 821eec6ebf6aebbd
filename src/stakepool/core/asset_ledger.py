from __future__ import annotations

import logging
import threading
from typing import Dict

from stakepool.core.exceptions import InsufficientFundsError

logger = logging.getLogger("stakepool.core.asset_ledger")


class AssetLedger:
    """
    In-memory balance book for fungible assets.

    Plays the role of the token contracts the pool moves stake and reward
    units through. Balances are integers in base units, keyed by asset id and
    then by holder identity.
    """

    def __init__(self):
        # {asset_id: {holder: balance}}
        self.balances: Dict[str, Dict[str, int]] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _validate_amount(amount: int) -> None:
        if not isinstance(amount, int) or amount < 0:
            raise ValueError("Asset amount must be a non-negative integer.")

    def mint(self, asset: str, holder: str, amount: int) -> int:
        """Creates `amount` new units of `asset` for `holder`. Returns the new balance."""
        if not asset:
            raise ValueError("Asset id cannot be empty.")
        if not holder:
            raise ValueError("Holder cannot be empty.")
        self._validate_amount(amount)

        with self._lock:
            book = self.balances.setdefault(asset, {})
            book[holder] = book.get(holder, 0) + amount
            logger.debug("Minted %s %s to %s", amount, asset, holder)
            return book[holder]

    def balance_of(self, asset: str, holder: str) -> int:
        return self.balances.get(asset, {}).get(holder, 0)

    def transfer(self, asset: str, sender: str, recipient: str, amount: int) -> None:
        """Moves `amount` units of `asset` from `sender` to `recipient`."""
        if not sender or not recipient:
            raise ValueError("Sender and recipient cannot be empty.")
        self._validate_amount(amount)
        if amount == 0:
            return

        with self._lock:
            book = self.balances.setdefault(asset, {})
            available = book.get(sender, 0)
            if available < amount:
                raise InsufficientFundsError(
                    f"{sender} holds {available} {asset}, cannot transfer {amount}.",
                    available=available,
                    requested=amount,
                    details={"asset": asset, "sender": sender, "recipient": recipient},
                )
            book[sender] = available - amount
            book[recipient] = book.get(recipient, 0) + amount
            logger.debug("Transferred %s %s from %s to %s", amount, asset, sender, recipient)

