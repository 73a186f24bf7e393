import logging
import os

DEFAULT_RESERVATION_GRACE_DAYS = 0
DEFAULT_LOG_LEVEL = "INFO"


def reservation_grace_days() -> int:
    """How many days in the past a new reservation is still allowed to start."""
    raw = os.getenv("APP_RESERVATION_GRACE_DAYS")
    if not raw:
        return DEFAULT_RESERVATION_GRACE_DAYS
    try:
        value = int(raw)
    except ValueError:
        logging.getLogger("app.config").warning(
            "invalid APP_RESERVATION_GRACE_DAYS=%r, using %s", raw, DEFAULT_RESERVATION_GRACE_DAYS
        )
        return DEFAULT_RESERVATION_GRACE_DAYS
    return max(0, value)


def log_level() -> str:
    return (os.getenv("APP_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
