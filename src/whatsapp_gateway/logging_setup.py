"""
Process logging setup for gateway entry points.
"""

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> None:
    """
    Configure the root logger once.

    Args:
        level: Log level name; defaults to WHATSAPP_LOG_LEVEL or INFO
    """
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv("WHATSAPP_LOG_LEVEL", "INFO")).upper()

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _configured = True
