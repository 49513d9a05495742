"""
Structured logging for Tiny64.

Console output for development, JSON for production. Logs go to stderr so a
caller piping generated IDs from stdout never sees log lines mixed in.

Every event carries the process id: in cross-process mode several
generators write to one log stream, and the pid is what tells them apart.
"""

import logging
import os
import sys
import time
from typing import Any

import structlog


def add_process_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Stamp the current pid on the event (re-read after fork)."""
    event_dict.setdefault("pid", os.getpid())
    return event_dict


def _processors(json_output: bool) -> list[structlog.types.Processor]:
    chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_process_id,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        chain += [structlog.processors.ExceptionRenderer(), structlog.dev.ConsoleRenderer(colors=False)]
    return chain


def configure_logging(
    *,
    json_output: bool | None = None,
    log_level: str = "WARNING",
) -> None:
    """
    Route library and CLI logs through structlog onto stderr.

    Args:
        json_output: JSON lines when True, console lines when False,
                    ENVIRONMENT-dependent when None
        log_level: Threshold name (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Raises:
        AttributeError: If log_level is not a stdlib level name
    """
    level = getattr(logging, log_level.upper())
    if json_output is None:
        json_output = is_production()

    # force=True: the CLI and tests reconfigure within one process
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)

    structlog.configure(
        processors=_processors(json_output),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Module logger; use as `logger = get_logger(__name__)`."""
    return structlog.get_logger(name)


def is_production() -> bool:
    return os.getenv("ENVIRONMENT", "development").lower() == "production"


class LogOperation:
    """
    Times a block and logs it as `<operation> started/completed/failed`.

    The started and completed events use `level`; failures are always
    logged at error, with a traceback outside production. Exceptions are
    never swallowed.

    Example:
        with LogOperation(logger, "generate_many", level="debug", count=10):
            ...
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        level: str = "info",
        **context: Any,
    ):
        self.operation = operation
        self.level = level
        self.log = logger.bind(operation=operation, **context)
        self.start_time = 0.0

    def _elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.start_time) * 1000, 2)

    def __enter__(self) -> "LogOperation":
        self.start_time = time.perf_counter()
        getattr(self.log, self.level)(f"{self.operation} started")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is None:
            getattr(self.log, self.level)(
                f"{self.operation} completed", duration_ms=self._elapsed_ms()
            )
            return

        self.log.error(
            f"{self.operation} failed",
            duration_ms=self._elapsed_ms(),
            error=str(exc_val),
            exc_info=not is_production(),
        )
