"""Error hierarchy for the payment gate and the guarded actions.

Every error carries the HTTP status it maps to and a message that is safe to
return to the caller. Internal detail goes to the log, never to the response.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from paygate.gate import GateDecision


class PaygateError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    message = "Internal server error."

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


class InputError(PaygateError):
    """Raised when a request carries a malformed address, amount or reference."""

    status_code = 400


class PaymentRejected(PaygateError):
    """Raised when the payment gate refuses a request."""

    def __init__(self, decision: "GateDecision"):
        from paygate.gate import REASON_MESSAGES, REASON_STATUS

        self.decision = decision
        self.status_code = REASON_STATUS[decision.reason]
        super().__init__(REASON_MESSAGES[decision.reason])

    def to_dict(self) -> dict:
        return {"error": self.message, "reason": self.decision.reason.value}


class PaymentAlreadyUsed(PaygateError):
    """Raised when a payment reference has already paid for an earlier request."""

    status_code = 409
    message = "This payment has already been used."


class NonceConflictError(PaygateError):
    """Raised when the ledger rejects a transfer because of transaction sequencing."""

    status_code = 409
    message = "Transfer rejected by the ledger: nonce conflict, please retry."


class LedgerError(PaygateError):
    """Raised when the ledger cannot be reached or answers with garbage."""

    status_code = 500
    message = "Ledger request failed."


class TransferNotSent(LedgerError):
    """Raised when a transfer failed before broadcast or the node refused it."""

    message = "Error performing the transfer."


class BroadcastUncertain(LedgerError):
    """Raised when the broadcast step failed in transit: the transfer may be on the wire."""

    message = "Transfer status unknown; check the ledger before retrying."

    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__()

    def to_dict(self) -> dict:
        return {"error": self.message, "txHash": self.tx_hash}
