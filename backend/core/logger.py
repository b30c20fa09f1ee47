# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Centralised logging configuration.

All log settings (levels, rotation, format …) live in  etc/logging.conf.
This module resolves the log-file path, patches it into the config text, and
applies it via the standard-library fileConfig loader.

Import the ready-made logger anywhere:
    from core.logger import logger

Components that want their own channel (``userhub.auth``, ``userhub.realtime``)
use :func:`get_logger`; records still flow through the ``userhub`` handlers.
"""

import configparser
import logging
import logging.config
import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
# project root: backend/core/logger.py  →  ../../  →  userhub/
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_LOG_DIR      = Path(os.environ.get("USERHUB_LOG_DIR", _PROJECT_ROOT / "log"))
_LOG_FILE     = _LOG_DIR / "app.log"
_LOGGING_CONF = _PROJECT_ROOT / "etc" / "logging.conf"

_LOG_DIR.mkdir(parents=True, exist_ok=True)

# ---------------------------------------------------------------------------
# Load & apply logging.conf
# ---------------------------------------------------------------------------
# logging.conf uses %(log_file)s as a placeholder for the rotating file
# handler.  RawConfigParser is required: the format strings contain
# %(asctime)s etc. which ConfigParser would try to interpolate.
_raw = _LOGGING_CONF.read_text(encoding="utf-8")
_raw = _raw.replace("%(log_file)s", str(_LOG_FILE).replace("\\", "/"))

_parser = configparser.RawConfigParser()
_parser.read_string(_raw)

logging.config.fileConfig(_parser, disable_existing_loggers=False)

# ---------------------------------------------------------------------------
# Module-level handle
# ---------------------------------------------------------------------------
logger = logging.getLogger("userhub")


def get_logger(channel: str) -> logging.Logger:
    """Return the ``userhub.<channel>`` child logger."""
    return logger.getChild(channel)
