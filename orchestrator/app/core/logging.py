"""Loguru sink setup shared by the API and the poll sweep."""
from __future__ import annotations

import sys

from loguru import logger


def configure_logging(level: str = "INFO", *, json_logs: bool = False) -> None:
    """Replace loguru's default sink with a single stderr sink.

    Structured fields are attached with ``logger.bind(...)``; with ``json_logs`` every
    record (including bound extras such as job_id/listing_id/actor) is serialized.
    """
    logger.remove()
    if json_logs:
        logger.add(sys.stderr, level=level.upper(), serialize=True)
        return
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level: <8} | {extra} {message}",
    )
