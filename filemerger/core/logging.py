import logging
from logging import Logger

from .config import get_settings

# Libraries that report every malformed input at WARNING level.
_NOISY_LOGGERS = ("pypdf", "PIL", "extract_msg", "olefile")


def configure_logging() -> Logger:
    """Set up the merger's logger on first use and return it."""
    settings = get_settings()

    logger = logging.getLogger(settings.app_name)
    if logger.handlers:
        return logger

    level = logging.getLevelName(settings.log_level.upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(asctime)s | %(name)s | %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False

    # Broken inputs become error pages; their parser chatter is not useful.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)

    return logger
