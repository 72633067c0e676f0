# paygate/actions.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from paygate import validation
from paygate.blockchain import LedgerMutation, LedgerQuery
from paygate.errors import (
    BroadcastUncertain,
    InputError,
    LedgerError,
    NonceConflictError,
    PaygateError,
    TransferNotSent,
)
from paygate.replay import ReplayGuard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferResult:
    tx_hash: str
    to: str
    amount: Decimal


class ActionDispatcher:
    """The two paid actions. Callers must have obtained an admit decision first.

    Inputs are validated before the ledger is touched. When a replay guard is
    configured, ``payment_ref`` is claimed after validation and right before
    the action runs.
    """

    def __init__(
        self,
        ledger: LedgerQuery,
        signer: LedgerMutation,
        *,
        replay_guard: Optional[ReplayGuard] = None,
    ):
        self.ledger = ledger
        self.signer = signer
        self.replay_guard = replay_guard

    async def _claim(self, payment_ref: Optional[str], action: str) -> None:
        if self.replay_guard is not None and payment_ref:
            await self.replay_guard.claim(payment_ref, action)

    async def _release(self, payment_ref: Optional[str]) -> None:
        # a failed action does not spend the payment
        if self.replay_guard is not None and payment_ref:
            await self.replay_guard.release(payment_ref)

    async def balance_query(self, address: Any, *, payment_ref: Optional[str] = None) -> str:
        address = validation.parse_address(address, field="address")
        await self._claim(payment_ref, "balance")

        try:
            wei = await self.ledger.get_balance(address)
        except Exception as e:
            await self._release(payment_ref)
            if isinstance(e, PaygateError):
                raise
            logger.exception("Balance query failed for %s", address)
            raise LedgerError("Error querying the balance.") from e

        return validation.format_ether(wei)

    async def transfer_execute(self, to: Any, amount: Any, *, payment_ref: Optional[str] = None) -> TransferResult:
        to = validation.parse_address(to, field="to")
        amt = validation.parse_amount(amount)
        value_wei = validation.to_wei(amt)
        await self._claim(payment_ref, "transfer")

        try:
            tx_hash = await self.signer.send_transaction(to, value_wei)
        except Exception as e:
            # only failures known to precede broadcast give the payment back
            if isinstance(e, (InputError, NonceConflictError, TransferNotSent)):
                await self._release(payment_ref)
            elif isinstance(e, BroadcastUncertain):
                logger.error("Transfer %s to %s may have been broadcast; payment stays spent", e.tx_hash, to)
            if isinstance(e, PaygateError):
                raise
            logger.exception("Transfer of %s wei to %s failed", value_wei, to)
            raise LedgerError("Error performing the transfer.") from e

        logger.info("Transfer of %s wei to %s broadcast as %s", value_wei, to, tx_hash)
        return TransferResult(tx_hash=tx_hash, to=to, amount=amt)
