# paygate/__main__.py
from __future__ import annotations

import logging

import uvicorn

from paygate.core.config import settings


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info("API listening on port %s", settings.PORT)
    uvicorn.run("paygate.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
