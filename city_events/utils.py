import logging
import re
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# Format used for event start times on screen and when typed by a user
DISPLAY_FORMAT = "%d/%m/%Y %H:%M"

PACKAGE_LOGGER_PREFIX = "city_events"


def format_datetime(value: Optional[datetime]) -> str:
    """
    Formats a datetime the way event start times are shown to users (dd/mm/YYYY HH:MM).
    Returns an empty string for None.
    """
    if value is None:
        return ""
    return value.strftime(DISPLAY_FORMAT)


def parse_datetime(text: str) -> datetime:
    """
    Parses a start time typed as dd/mm/YYYY HH:MM.
    Raises ValueError when the text does not match.
    """
    return datetime.strptime(text.strip(), DISPLAY_FORMAT)


def normalize_text(value: Optional[str]) -> str:
    """Trims and lowercases a search term. None becomes an empty string."""
    if value is None:
        return ""
    return value.strip().lower()


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def only_digits(value: str) -> str:
    return re.sub(r"\D", "", value)


def apply_log_level(level: str) -> None:
    """
    Applies the configured level to every logger of the package.
    Module loggers set their own level, so the parent level alone is not enough.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        logger.warning("Unknown log level '%s', keeping INFO", level)
        return

    for name in list(logging.root.manager.loggerDict):
        if name == PACKAGE_LOGGER_PREFIX or name.startswith(PACKAGE_LOGGER_PREFIX + "."):
            logging.getLogger(name).setLevel(numeric)
