"""Console and file sinks for the evoplanets logger."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

_PLAIN_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"
_COLOR_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> | "
    "<level>{message}</level>"
)


def setup_logging(level: str = "INFO",
                  log_file: Optional[Path | str] = None,
                  enable_colors: bool = True,
                  rotation: str = "50 MB") -> None:
    """Replace loguru's default sink with a stderr sink and an optional file sink.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a log file; parent directories are created
        enable_colors: Colour the console output when stderr is a terminal
        rotation: Rotation policy for the file sink (e.g. "50 MB", "1 day")
    """

    logger.remove()
    colorize = enable_colors and sys.stderr.isatty()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=_COLOR_FORMAT if colorize else _PLAIN_FORMAT,
        colorize=colorize,
    )
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(path),
            level=level.upper(),
            format=_PLAIN_FORMAT,
            rotation=rotation,
            encoding="utf-8",
        )
    logger.debug(f"[Logging] level={level.upper()} file={log_file}")


__all__ = ['setup_logging']
