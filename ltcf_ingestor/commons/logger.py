import os
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(root: str, level: str | None = None, filename: str = "ltcf.log"):
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logdir = Path(root) / datetime.now().strftime("%Y/%m/%d")
    logdir.mkdir(parents=True, exist_ok=True)
    logger.remove()
    logger.add(
        str(logdir / filename),
        format=LOG_FORMAT,
        rotation="00:00",
        retention="14 days",
        level=level,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)
    return logger
