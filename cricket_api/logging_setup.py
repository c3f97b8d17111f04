# cricket_api/logging_setup.py
from __future__ import annotations

import logging
from typing import Optional

from cricket_api.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once per process (CLI and API share this)."""
    global _configured
    if _configured:
        return

    name = (level or LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)

    # Google client libraries are chatty at INFO
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    _configured = True
