# paygate/schemas.py
# Request bodies are deliberately loose: field checks happen after the payment
# gate, in the order the API documents, not in pydantic.
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class PaidRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    txHash: Optional[Any] = None


class BalanceRequest(PaidRequest):
    address: Optional[Any] = None


class TransferRequest(PaidRequest):
    to: Optional[Any] = None
    amount: Optional[Any] = None


class BalanceResponse(BaseModel):
    balance: str


class TransferResponse(BaseModel):
    success: bool = True
    txHash: str
    message: str
