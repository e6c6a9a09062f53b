"""
Logging setup for processes that host the governance engine.

The engine's modules only emit records through `logging.getLogger(__name__)`.
`configure_logging` attaches one stdout handler to the `agent_governance`
package logger, using the levels and format from `GovernanceSettings`
(`GOVERNANCE_LOG_LEVEL`, `GOVERNANCE_LOG_FORMAT`, `GOVERNANCE_STORAGE_LOG_LEVEL`).
The storage logger gets its own level because it reports every retried SQLite
call, which is noisy while the recorder rides out lock contention.

Records do not propagate to the root logger once configured, so a host that
sets up its own root handler does not print governance lines twice.
"""
from __future__ import annotations

import logging
import sys
from typing import Final, Optional

from .config import GovernanceSettings

PACKAGE_LOGGER: Final[str] = "agent_governance"
STORAGE_LOGGER: Final[str] = "agent_governance.database"
HANDLER_NAME: Final[str] = "agent_governance.stdout"
DEFAULT_DATEFMT: Final[str] = "%Y-%m-%d %H:%M:%S"


def _find_handler(logger: logging.Logger) -> Optional[logging.Handler]:
    return next((h for h in logger.handlers if h.get_name() == HANDLER_NAME), None)


def configure_logging(settings: Optional[GovernanceSettings] = None, *, force: bool = False) -> logging.Logger:
    """
    Configure the governance loggers from settings.

    Args:
        settings: Source of levels and format; read from the environment when
            omitted.
        force: When True, an existing governance handler is replaced.

    Returns:
        The configured package logger.
    """
    settings = settings or GovernanceSettings()
    package_logger = logging.getLogger(PACKAGE_LOGGER)

    existing = _find_handler(package_logger)
    if existing is not None:
        if not force:
            return package_logger
        package_logger.removeHandler(existing)

    package_logger.setLevel(settings.log_level)
    logging.getLogger(STORAGE_LOGGER).setLevel(settings.storage_log_level)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(logging.Formatter(fmt=settings.log_format, datefmt=DEFAULT_DATEFMT))
    package_logger.addHandler(handler)
    package_logger.propagate = False
    return package_logger
