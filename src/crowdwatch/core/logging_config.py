"""Process-wide logging setup."""

import logging
import sys

from crowdwatch.core.config import Settings

CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
JSON_FORMAT = (
    '{"time": "%(asctime)s", "level": "%(levelname)s", '
    '"logger": "%(name)s", "message": "%(message)s"}'
)


def configure_logging(settings: Settings) -> None:
    """Configure the root logger from settings.

    Args:
        settings: Application settings (log_level, log_format)
    """
    fmt = JSON_FORMAT if settings.log_format == "json" else CONSOLE_FORMAT
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())

    # web3 logs every websocket frame at DEBUG
    logging.getLogger("web3").setLevel(max(root.level, logging.INFO))
    logging.getLogger("websockets").setLevel(max(root.level, logging.INFO))
