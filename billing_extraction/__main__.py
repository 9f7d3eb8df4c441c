"""Entry point for the billing extraction service."""

from __future__ import annotations

import asyncio

from .config import AppConfig
from .logging import setup_logging
from .service import ExtractionService


def main() -> None:
    config = AppConfig()
    setup_logging(json=config.log_json, level=config.log_level)
    service = ExtractionService(config)
    asyncio.run(service.run())


if __name__ == "__main__":
    main()
