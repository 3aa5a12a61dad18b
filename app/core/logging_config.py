# app/core/logging_config.py
"""
Logging setup for the portal service.

Modules log through ``logging.getLogger(__name__)``; this module only
installs the handler on the ``app`` logger hierarchy once at startup.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> logging.Logger:
    global _configured

    root = logging.getLogger("app")
    root.setLevel(level.upper())

    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        _configured = True

    return root
