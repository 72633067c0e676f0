# paygate/models.py
from __future__ import annotations

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class ConsumedPayment(Base):
    """A payment reference that has already paid for a request (replay protection)."""

    __tablename__ = "consumed_payments"

    # lower-cased 0x... hash; the primary key is what makes claiming atomic
    tx_hash = Column(String(128), primary_key=True)

    action = Column(String(32), nullable=False)  # balance / transfer
    consumed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)
