# paygate/replay.py
# Optional consumed-payment store. When enabled, each verified payment
# reference pays for exactly one request.

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from paygate import models
from paygate.database import db_session
from paygate.errors import PaymentAlreadyUsed

logger = logging.getLogger(__name__)


def _key(tx_hash: str) -> str:
    return tx_hash.strip().lower()


class ReplayGuard:
    def __init__(self, SessionLocal: sessionmaker):
        self.SessionLocal = SessionLocal

    def claim_sync(self, tx_hash: str, action: str) -> None:
        row = models.ConsumedPayment(tx_hash=_key(tx_hash), action=action)
        try:
            with db_session(self.SessionLocal) as db:
                db.add(row)
        except IntegrityError:
            logger.warning("Payment %r replayed for %s", tx_hash[:80], action)
            raise PaymentAlreadyUsed() from None

    def release_sync(self, tx_hash: str) -> None:
        with db_session(self.SessionLocal) as db:
            db.query(models.ConsumedPayment).filter(models.ConsumedPayment.tx_hash == _key(tx_hash)).delete()

    def is_consumed(self, tx_hash: str) -> bool:
        with db_session(self.SessionLocal) as db:
            row = db.get(models.ConsumedPayment, _key(tx_hash))
            return row is not None

    async def claim(self, tx_hash: str, action: str) -> None:
        await asyncio.to_thread(self.claim_sync, tx_hash, action)

    async def release(self, tx_hash: str) -> None:
        await asyncio.to_thread(self.release_sync, tx_hash)
