"""
Logging setup for the support chat service.

Console logging is always on; file logging is opt-in through
ENABLE_FILE_LOGGING and writes one file per day.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from supportchat.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: Optional[str] = None,
    enable_file: Optional[bool] = None,
    log_dir: Optional[str] = None,
) -> None:
    """
    Configures the root logger.

    Args:
        level: Logging level name. Defaults to settings.LOG_LEVEL.
        enable_file: If True, also log to a file. Defaults to settings.ENABLE_FILE_LOGGING.
        log_dir: Directory for the log file. Defaults to settings.LOG_DIR.
    """
    level = (level or settings.LOG_LEVEL).upper()
    if enable_file is None:
        enable_file = settings.ENABLE_FILE_LOGGING

    logging.basicConfig(level=level, format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)

    if enable_file:
        directory = Path(log_dir or settings.LOG_DIR)
        directory.mkdir(parents=True, exist_ok=True)
        log_file = directory / f"support_chat_{datetime.now().strftime('%Y%m%d')}.log"

        # Avoid adding the same file handler twice on reload
        for handler in root.handlers:
            if isinstance(handler, logging.FileHandler) and Path(
                handler.baseFilename
            ) == log_file.resolve():
                return

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)


def preview(text: str, limit: int = 40) -> str:
    """Shortens user content for log lines."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
