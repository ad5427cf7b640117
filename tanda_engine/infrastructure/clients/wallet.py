"""Funds transfer boundary - signing and submission happen in the wallet layer"""

from decimal import Decimal
from typing import Protocol

from tanda_engine.domain.exceptions import TransferError
from tanda_engine.domain.models import Tanda


class FundsTransfer(Protocol):
    async def transfer(self, tanda: Tanda, amount: Decimal) -> str:
        """
        Move `amount` to the tanda's custody account.

        Returns:
            Proof of transfer (transaction hash) for Ledger confirmation

        Raises:
            InsufficientFundsError: Balance does not cover the amount
            TransferError: Building, signing or submitting failed
        """
        ...


class UnconfiguredTransfer:
    """Placeholder used until a wallet integration is wired in"""

    async def transfer(self, tanda: Tanda, amount: Decimal) -> str:
        raise TransferError("No wallet transfer backend configured")
