import logging
from typing import Any, Dict, Optional

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] [%(session)s] %(message)s"

# Third-party loggers held at WARNING unless debugging
NOISY_LOGGERS = ("asyncio", "aiohttp.access", "playwright")


def session_extra(tab_id: Optional[int], origin_tab_id: Optional[int] = None) -> Dict[str, Any]:
    """``extra`` mapping for records about the session on ``tab_id``."""
    return {"tab_id": tab_id, "origin_tab_id": origin_tab_id}


def describe_session(tab_id: Optional[int], origin_tab_id: Optional[int] = None) -> str:
    """
    Render the session field of a log line.

    ``tab:2`` for a session on its own tab, ``tab:2<-1`` once a session
    started on tab 1 has moved to the popup it opened, ``-`` otherwise.
    """
    if tab_id is None:
        return "-"
    if origin_tab_id is None or origin_tab_id == tab_id:
        return f"tab:{tab_id}"
    return f"tab:{tab_id}<-{origin_tab_id}"


# --- Custom Logging Filter ---
class SessionLogFilter(logging.Filter):
    """
    Adds a rendered ``session`` field to every record, so the shared format
    string works for records logged without ``session_extra`` too.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        tab_id = getattr(record, "tab_id", None)
        origin_tab_id = getattr(record, "origin_tab_id", None)
        record.tab_id = tab_id
        record.origin_tab_id = origin_tab_id
        record.session = describe_session(tab_id, origin_tab_id)
        return True


# --- Logging Setup Utility ---
def init_logging(level: int = logging.INFO, clear_existing_handlers: bool = True) -> None:
    """
    Sets up console logging for a tabpilot run.

    Args:
        level: The desired logging level for the root logger.
        clear_existing_handlers: If True, removes any handlers already attached to the
                                 root logger to prevent duplicate output when called twice.
    """
    root_logger = logging.getLogger()

    if clear_existing_handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    stream_handler.addFilter(SessionLogFilter())

    root_logger.addHandler(stream_handler)
    root_logger.setLevel(level)

    noisy_level = logging.NOTSET if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    logging.getLogger(__name__).debug(
        f"Logging setup complete. Root logger level set to {logging.getLevelName(level)}."
    )
