# paygate/core/config.py
from __future__ import annotations

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- HTTP ---
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    # --- Blockchain (EVM JSON-RPC) ---
    RPC_URL: str | None = None
    RPC_TIMEOUT: float = 10.0
    PRIVATE_KEY: SecretStr | None = None  # never log / echo
    CURRENCY_SYMBOL: str = "ETH"

    # --- Payment gate ---
    PAYMENT_CONFIRM_TIMEOUT: float = 120.0  # 0 = do not wait for pending payments
    PAYMENT_POLL_INTERVAL: float = 2.0

    # --- Replay protection (optional) ---
    REPLAY_PROTECTION: bool = False
    DATABASE_URL: str | None = None

    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    def database_url(self) -> str:
        url = self.DATABASE_URL or ""
        # Some hosts hand out postgres://; SQLAlchemy expects postgresql://
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url


settings = Settings()
