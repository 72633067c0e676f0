# paygate/gate.py
"""Payment gate.

Decides whether a request may proceed, based on a claimed on-chain payment to
the service wallet. Checks run in a fixed order and the first failing one
wins:

    missing-reference -> not-found -> not-mined / timeout -> reverted -> wrong-recipient

Any unexpected ledger failure fails closed with ``verification-error``.
The gate only reads ledger state; it never records that a payment was used.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from paygate.blockchain import LedgerQuery, TransactionRecord

logger = logging.getLogger(__name__)


def _loggable(tx_ref: str) -> str:
    # caller-controlled: bounded and repr'd so it cannot break log lines
    return repr(tx_ref[:80])


class GateReason(str, enum.Enum):
    MISSING_REFERENCE = "missing-reference"
    NOT_FOUND = "not-found"
    NOT_MINED = "not-mined"
    TIMEOUT = "timeout"
    REVERTED = "reverted"
    WRONG_RECIPIENT = "wrong-recipient"
    VERIFICATION_ERROR = "verification-error"


REASON_STATUS = {
    GateReason.MISSING_REFERENCE: 400,
    GateReason.NOT_FOUND: 404,
    GateReason.NOT_MINED: 409,
    GateReason.TIMEOUT: 504,
    GateReason.REVERTED: 400,
    GateReason.WRONG_RECIPIENT: 403,
    GateReason.VERIFICATION_ERROR: 500,
}

REASON_MESSAGES = {
    GateReason.MISSING_REFERENCE: "txHash is required in the request body.",
    GateReason.NOT_FOUND: "Transaction not found on the blockchain.",
    GateReason.NOT_MINED: "Transaction has not been mined yet.",
    GateReason.TIMEOUT: "Timed out waiting for the transaction to be mined.",
    GateReason.REVERTED: "The transaction failed or was reverted.",
    GateReason.WRONG_RECIPIENT: "The transaction was not sent to this API's address.",
    GateReason.VERIFICATION_ERROR: "Internal error while verifying the transaction.",
}


@dataclass(frozen=True)
class GateDecision:
    admit: bool
    reason: Optional[GateReason] = None
    record: Optional[TransactionRecord] = None

    @classmethod
    def admitted(cls, record: TransactionRecord) -> "GateDecision":
        return cls(admit=True, record=record)

    @classmethod
    def rejected(cls, reason: GateReason, record: Optional[TransactionRecord] = None) -> "GateDecision":
        return cls(admit=False, reason=reason, record=record)


class PaymentGate:
    def __init__(
        self,
        ledger: LedgerQuery,
        *,
        confirm_timeout: float = 120.0,
        poll_interval: float = 2.0,
    ):
        if confirm_timeout < 0:
            raise ValueError("confirm_timeout must be >= 0")
        if poll_interval <= 0 and confirm_timeout > 0:
            raise ValueError("poll_interval must be > 0 when waiting for confirmation")
        self.ledger = ledger
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval

    async def verify(self, tx_ref: Any, expected_recipient: str) -> GateDecision:
        if not isinstance(tx_ref, str) or not tx_ref.strip():
            return GateDecision.rejected(GateReason.MISSING_REFERENCE)
        tx_ref = tx_ref.strip()

        try:
            decision = await self._verify(tx_ref, expected_recipient)
        except Exception:
            logger.exception("Payment verification failed for %s", _loggable(tx_ref))
            return GateDecision.rejected(GateReason.VERIFICATION_ERROR)

        if decision.admit:
            logger.info("Payment %s admitted", _loggable(tx_ref))
        else:
            logger.info("Payment %s rejected: %s", _loggable(tx_ref), decision.reason.value)
        return decision

    async def _verify(self, tx_ref: str, expected_recipient: str) -> GateDecision:
        record = await self.ledger.get_transaction(tx_ref)
        if record is None:
            return GateDecision.rejected(GateReason.NOT_FOUND)

        if not record.mined:
            if self.confirm_timeout == 0:
                return GateDecision.rejected(GateReason.NOT_MINED, record)
            record = await self._await_inclusion(tx_ref, record)
            if record is None:
                return GateDecision.rejected(GateReason.NOT_FOUND)
            if not record.mined:
                return GateDecision.rejected(GateReason.TIMEOUT, record)

        if not record.succeeded:
            return GateDecision.rejected(GateReason.REVERTED, record)

        if not record.recipient or record.recipient.lower() != expected_recipient.lower():
            return GateDecision.rejected(GateReason.WRONG_RECIPIENT, record)

        return GateDecision.admitted(record)

    async def _await_inclusion(self, tx_ref: str, record: TransactionRecord) -> Optional[TransactionRecord]:
        """Poll until the transaction is mined, dropped (None) or the deadline passes.

        On timeout the last pending record is returned.
        """
        deadline = time.monotonic() + self.confirm_timeout
        logger.debug("Waiting up to %.1fs for %s to be mined", self.confirm_timeout, _loggable(tx_ref))

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return record
            await asyncio.sleep(min(self.poll_interval, remaining))

            try:
                record = await asyncio.wait_for(self.ledger.get_transaction(tx_ref), timeout=max(deadline - time.monotonic(), 0.001))
            except asyncio.TimeoutError:
                return record
            if record is None or record.mined:
                return record
