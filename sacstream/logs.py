"""
SAC Stream logging setup.

Library modules only create named loggers (sacstream.session,
sacstream.transport, ...). Applications call setup_logging() once.
"""

import logging


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger.

    Args:
        level: Level name (DEBUG, INFO, ...). Defaults to logging.level
               from the stream config.
    """
    if level is None:
        from sacstream.config import get_config
        level = get_config().logging.level
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    logging.getLogger("sacstream").setLevel(numeric_level)
