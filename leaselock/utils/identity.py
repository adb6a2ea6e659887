"""Identity untuk field lockedBy (informational saja)."""

import logging
import socket

from .config import Config

logger = logging.getLogger(__name__)


def get_hostname() -> str:
    """
    Identity proses ini.
    Prioritas: LOCKED_BY dari config, lalu hostname, lalu "unknown".
    """
    if Config.LOCKED_BY:
        return Config.LOCKED_BY
    try:
        return socket.gethostname() or "unknown"
    except OSError as e:
        logger.warning(f"Could not resolve hostname: {e}")
        return "unknown"
