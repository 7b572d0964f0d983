import json
import logging
import sys
from typing import Any

logger = logging.getLogger(__name__)

LOG_VALUE_LIMIT = 512


# --- Custom Logging Filter ---
# Guarantees a 'session' attribute and a readable logger name on every record,
# including records from aiohttp and playwright that never pass `extra`.
class SessionLogFilter(logging.Filter):
    """
    A logging filter that ensures 'session' and a normalized 'name'
    are present on log records for consistent formatting.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        current_session = getattr(record, "session", None)
        if current_session is None:
            record.session = "-"
        else:
            record.session = str(current_session)

        current_logger_name = getattr(record, "name", None)
        if not current_logger_name or current_logger_name == "root":
            record.name = "DefaultLogger"
        else:
            record.name = str(current_logger_name)

        return True


# --- Logging Setup Utility ---
def init_logging(level: int = logging.INFO, clear_existing_handlers: bool = True) -> None:
    """
    Sets up console logging on stderr so stdout stays reserved for replies.

    Args:
        level: The desired logging level for the root logger.
        clear_existing_handlers: If True, removes any handlers already attached to the
                                 root logger, preventing duplicate output when called twice.
    """
    root_logger = logging.getLogger()

    if clear_existing_handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - [%(name)s] [%(session)s] %(message)s")
    stream_handler.setFormatter(formatter)
    stream_handler.addFilter(SessionLogFilter())

    root_logger.addHandler(stream_handler)
    root_logger.setLevel(level)

    # Third-party chatter stays at WARNING unless we are debugging.
    if level > logging.DEBUG:
        for noisy in ("aiohttp", "asyncio", "urllib3"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.debug(f"Logging setup complete. Root logger level set to {logging.getLevelName(level)}.")


def truncate_for_log(value: str, limit: int = LOG_VALUE_LIMIT) -> str:
    """Cap ``value`` at ``limit`` characters, marking the cut with ``...``."""
    if limit <= 0 or len(value) <= limit:
        return value
    if limit <= 3:
        return value[:limit]
    return value[: limit - 3] + "..."


def marshal_for_log(value: Any, limit: int = LOG_VALUE_LIMIT) -> str:
    """JSON-encode ``value`` for a log line, truncated to ``limit``."""
    try:
        data = json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError) as e:
        return f"<marshal error: {e}>"
    return truncate_for_log(data, limit)
