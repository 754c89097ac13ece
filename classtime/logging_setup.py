import logging
import logging.handlers
from pathlib import Path
from typing import List, Optional, Union


def setup_logging(*, level: Union[str, int] = "INFO", log_file: Optional[str] = None) -> None:
    """Configure the ``classtime`` logger.

    - Always a console handler.
    - Optionally a rotating file handler when ``log_file`` is given.

    Safe to call multiple times (won't double-add handlers).
    """
    logger = logging.getLogger("classtime")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    if logger.handlers:
        return

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    handlers: List[logging.Handler] = []

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    handlers.append(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            path,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    for h in handlers:
        h.setLevel(level)
        logger.addHandler(h)
