# paygate/main.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from paygate.actions import ActionDispatcher
from paygate.blockchain import LedgerQuery, Web3Ledger, WalletSigner, make_web3
from paygate.core.config import Settings, settings
from paygate.database import init_db, make_engine, make_sessionmaker
from paygate.errors import PaygateError, PaymentRejected
from paygate.gate import PaymentGate
from paygate.monitoring import run_selftest
from paygate.replay import ReplayGuard
from paygate.schemas import BalanceRequest, BalanceResponse, TransferRequest, TransferResponse

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide, read-only after startup."""

    gate: PaymentGate
    dispatcher: ActionDispatcher
    ledger: LedgerQuery
    receiving_address: str
    engine: Optional[Engine] = None


def build_services(config: Settings) -> Services:
    if not config.RPC_URL:
        raise RuntimeError("RPC_URL is not set")
    if config.PRIVATE_KEY is None:
        raise RuntimeError("PRIVATE_KEY is not set")

    w3 = make_web3(config.RPC_URL, timeout=config.RPC_TIMEOUT)
    ledger = Web3Ledger(w3)
    signer = WalletSigner(w3, config.PRIVATE_KEY.get_secret_value())

    engine = None
    replay_guard = None
    if config.REPLAY_PROTECTION:
        engine = make_engine(config.database_url())
        init_db(engine)
        replay_guard = ReplayGuard(make_sessionmaker(engine))

    return Services(
        gate=PaymentGate(
            ledger,
            confirm_timeout=config.PAYMENT_CONFIRM_TIMEOUT,
            poll_interval=config.PAYMENT_POLL_INTERVAL,
        ),
        dispatcher=ActionDispatcher(ledger, signer, replay_guard=replay_guard),
        ledger=ledger,
        receiving_address=signer.address,
        engine=engine,
    )


def get_services(request: Request) -> Services:
    services = request.app.state.services
    if services is None:
        raise PaygateError("Service is not configured.")
    return services


async def require_payment(services: Services, tx_ref: Any) -> None:
    decision = await services.gate.verify(tx_ref, services.receiving_address)
    if not decision.admit:
        raise PaymentRejected(decision)


def create_app(services: Optional[Services] = None, *, config: Settings = settings) -> FastAPI:
    app = FastAPI(title="Payment-Gated Ledger API")
    app.state.services = services
    app.state.settings = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event():
        if app.state.services is not None:
            return
        try:
            app.state.services = build_services(config)
            logger.info("Ledger services initialized (receiving address %s)", app.state.services.receiving_address)
        except Exception:
            logger.exception("Ledger services init failed (startup). Paid endpoints will answer 500.")

    @app.exception_handler(PaygateError)
    async def paygate_error_handler(request: Request, exc: PaygateError):
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": "Invalid request body."}, status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def global_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error."}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.get("/")
    async def root():
        return {"message": "Payment-Gated Ledger API is running"}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/ready")
    async def ready():
        result = await run_selftest(config, app.state.services, quick=True)
        return {"status": result.get("status", "unknown"), "checks": result.get("checks", [])}

    @app.get("/selftest")
    async def selftest():
        return await run_selftest(config, app.state.services, quick=False)

    @app.post("/balance", response_model=BalanceResponse)
    async def balance(
        body: Optional[BalanceRequest] = None,
        services: Services = Depends(get_services),
    ):
        body = body or BalanceRequest()
        await require_payment(services, body.txHash)

        value = await services.dispatcher.balance_query(body.address, payment_ref=body.txHash)
        return BalanceResponse(balance=value)

    @app.post("/transfer", response_model=TransferResponse)
    async def transfer(
        body: Optional[TransferRequest] = None,
        services: Services = Depends(get_services),
    ):
        body = body or TransferRequest()
        await require_payment(services, body.txHash)

        result = await services.dispatcher.transfer_execute(body.to, body.amount, payment_ref=body.txHash)
        return TransferResponse(
            success=True,
            txHash=result.tx_hash,
            message=f"Transfer of {format(result.amount, 'f')} {config.CURRENCY_SYMBOL} sent.",
        )

    return app


app = create_app()
