"""
logging_config.py
─────────────────
Process-wide logging for the recovery server.

Everything the server has to report goes through here: card detection at
startup, each unreadable sector during a raw transfer, short static file
transfers and every 404 diagnostic. Lines go to stdout and, optionally,
to a log file that survives the session (useful when the card is being
imaged overnight).
"""

import logging
import sys
from pathlib import Path


DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(component: str, level: int | str = logging.INFO, log_file: str | None = None):
    """
    Configure the root logger and return the component's own logger.

    level accepts a logging constant or a name such as "debug".
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved

    line_format = f"[%(asctime)s] [{component.upper()}] %(levelname)s - %(message)s"
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    # force: uvicorn or a previous call may already have configured the root
    logging.basicConfig(level=level, format=line_format, datefmt=DATE_FORMAT,
                        handlers=handlers, force=True)

    logger = logging.getLogger(component)
    logger.info("%s logging initialized (level=%s)", component.upper(), logging.getLevelName(level))
    return logger
