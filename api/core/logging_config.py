"""
Process-wide logging setup.

Library modules only create module loggers (`logging.getLogger(__name__)`);
the embedding application decides whether to call `configure_logging()`.
"""

from __future__ import annotations

import logging

from . import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    resolved = (level or settings.log_level()).upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
