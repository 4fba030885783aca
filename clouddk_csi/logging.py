"""Logging for clouddk-csi.

The package logs through loguru and is disabled on import. A Driver turns it
on for its own lifetime when created with ``logging=True`` or a LogConfig:

    async with Driver(settings, logging=LogConfig(level="DEBUG", file="clouddk.log")):
        ...

Every record is tagged with the component that emitted it (api, http, ssh,
servers, ...), which shows up as its own column.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, TypeAlias

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record

PACKAGE = "clouddk_csi"

logger.disable(PACKAGE)

LogLevel: TypeAlias = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Where driver logs go.

    Attributes:
        level: Minimum level written to stderr.
        file: Log file path. The file always receives DEBUG and above.
        console: Write to stderr.
        rotation: Size or age after which the file is rotated.
        retention: Rotated files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    rotation: str = "50 MB"
    retention: int = 10


def _component(record: Record) -> str:
    return str(record["extra"].get("component", "-"))


def _console_format(record: Record) -> str:
    record["extra"].setdefault("component", _component(record))
    return (
        "<green>{time:HH:mm:ss.SSS}</green> <level>{level: <7}</level> "
        "<magenta>{extra[component]: <9}</magenta> <level>{message}</level>\n{exception}"
    )


def _file_format(record: Record) -> str:
    record["extra"].setdefault("component", _component(record))
    return (
        "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} {level: <7} {extra[component]: <9} "
        "{name}:{line} {message}\n{exception}"
    )


def _from_package(record: Record) -> bool:
    name = record["name"] or ""
    return name == PACKAGE or name.startswith(f"{PACKAGE}.")


def resolve_log_config(logging: LogConfig | bool) -> LogConfig | None:
    """``True`` means console logging at INFO, ``False`` means none."""
    match logging:
        case LogConfig():
            return logging
        case True:
            return LogConfig()
        case _:
            return None


def setup_logging(config: LogConfig) -> list[int]:
    """Enable package logging; returns the handler ids to pass to teardown_logging()."""
    logger.enable(PACKAGE)
    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(
            logger.add(
                sys.stderr,
                level=config.level,
                format=_console_format,
                colorize=True,
                filter=_from_package,
            )
        )
    if config.file:
        handler_ids.append(
            logger.add(
                config.file,
                level="DEBUG",
                format=_file_format,
                filter=_from_package,
                rotation=config.rotation,
                retention=config.retention,
                compression="zip",
                diagnose=False,  # locals in tracebacks include the initial root password
                enqueue=True,
            )
        )
    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable(PACKAGE)
