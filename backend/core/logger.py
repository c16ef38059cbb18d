# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Centralised logging configuration.

Levels, handlers, rotation and format live in etc/logging.conf.  The file
uses ``%(log_file)s`` as a placeholder for the rotating log path; it is
resolved from ``settings.log_dir`` (default: <project>/log/app.log) when
:func:`configure_logging` runs at import time.

    from core.logger import logger            # the "usermgr" logger
    from core.logger import get_logger
    log = get_logger("auth")                  # "usermgr.auth"

The client package logs under ``usermgr.client`` and therefore shares the
same handlers when both run in one process.
"""

import configparser as _cp
import logging
import logging.config
from pathlib import Path

from core.config import settings

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_LOGGING_CONF = _PROJECT_ROOT / "etc" / "logging.conf"

APP_LOGGER = "usermgr"


def _log_file() -> Path:
    log_dir = Path(settings.log_dir) if settings.log_dir else _PROJECT_ROOT / "log"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / "app.log"


def configure_logging(conf_path: Path = _LOGGING_CONF) -> logging.Logger:
    """Apply *conf_path* and return the application logger."""
    raw = conf_path.read_text(encoding="utf-8")
    # forward slashes: the handler args are eval'd by fileConfig
    raw = raw.replace("%(log_file)s", _log_file().as_posix())

    # RawConfigParser: the format strings hold %(asctime)s etc.
    parser = _cp.RawConfigParser()
    parser.read_string(raw)
    logging.config.fileConfig(parser, disable_existing_loggers=False)

    app_logger = logging.getLogger(APP_LOGGER)
    if settings.log_level:
        app_logger.setLevel(settings.log_level.upper())
    return app_logger


logger = configure_logging()


def get_logger(name: str) -> logging.Logger:
    """Return a child of the application logger, e.g. ``usermgr.auth``."""
    return logger.getChild(name)
