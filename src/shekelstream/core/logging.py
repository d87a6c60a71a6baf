from __future__ import annotations

from datetime import datetime
from pathlib import Path
import sys
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record

    from shekelstream.core.config import AppConfig

CONSOLE_FORMAT = (
    "<green>{extra[timestamp]}</green> <level>{level}</level>: "
    "{message} <dim>{extra[context]}</dim>"
)


def timezoned(moment: datetime, timezone: str) -> str:
    """Render a datetime as ISO-8601 with offset in the given timezone."""
    return moment.astimezone(ZoneInfo(timezone)).strftime("%Y-%m-%dT%H:%M:%S%z")


def configure_logging(config: AppConfig, *, log_dir: str = "logs") -> None:
    """Replace loguru's default sink with console and file sinks.

    File sinks are skipped inside Docker, where volume permissions get in the
    way; container logs are collected from stderr instead.
    """

    def patch(record: Record) -> None:
        extra = record["extra"]
        context = {k: v for k, v in extra.items() if k not in ("timestamp", "context")}
        extra["timestamp"] = timezoned(record["time"], config.default_timezone)
        extra["context"] = context or ""

    logger.remove()
    logger.configure(patcher=patch)
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level="INFO", colorize=True)

    if not config.docker:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        logger.add(f"{log_dir}/error.log", level="ERROR", serialize=True)
        logger.add(f"{log_dir}/combined.log", level="INFO", serialize=True)
