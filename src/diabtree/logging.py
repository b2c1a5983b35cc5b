"""Logging utilities for diabtree.

Training and the HTTP service log through loguru under the `diabtree` name,
which stays disabled until `enable_logging()` is called. Served predictions
and confusion-matrix requests log at the custom REQUEST level, so a deployment
can keep an audit trail of requests without training chatter by choosing
`level="REQUEST"`. `log_format="json"` emits machine-readable lines for
container log collectors.

Note:
    Importing this module removes loguru's default stderr handler (ID 0) to
    prevent duplicate output when ``enable_logging()`` adds its own handler.
    If your application configures loguru handlers *before* importing diabtree,
    handler 0 may no longer be the default; in that case the removal is a
    no-op (the ``ValueError`` is suppressed).
"""

from __future__ import annotations

import contextlib
import sys
import threading
import warnings
from typing import TYPE_CHECKING, ClassVar, Final, Literal, TextIO, TypeAlias

from loguru import logger

if TYPE_CHECKING:
    from types import TracebackType

    from loguru import Record

PACKAGE_NAME: Final[str] = __name__.split(".")[0]

with contextlib.suppress(ValueError):
    logger.remove(0)

# Served predictions and evaluations log at REQUEST (between INFO=20 and WARNING=30)
REQUEST_LEVEL: Final[str] = "REQUEST"
REQUEST_LEVEL_NUMBER: Final[int] = 25


def _register_request_level() -> None:
    """Register the REQUEST custom log level with loguru.

    If the level already exists with a different numeric value, emits a
    UserWarning because loguru does not permit changing it.
    """
    try:
        existing_level = logger.level(REQUEST_LEVEL)
    except ValueError:
        logger.level(REQUEST_LEVEL, no=REQUEST_LEVEL_NUMBER, icon="📨")
    else:
        if existing_level.no != REQUEST_LEVEL_NUMBER:
            msg = (
                f"REQUEST level already registered with numeric value {existing_level.no},"
                f" expected {REQUEST_LEVEL_NUMBER}"
            )
            warnings.warn(msg, stacklevel=2)


_register_request_level()

LogLevel: TypeAlias = Literal[
    "TRACE",
    "DEBUG",
    "INFO",
    "REQUEST",
    "WARNING",
    "ERROR",
    "CRITICAL",
]

LogFormat: TypeAlias = Literal["short", "full", "json"]

_TEXT_FORMATS: Final[dict[str, str]] = {
    "short": (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "  # noqa: RUF027 - loguru format string
        "<cyan>{function}</cyan> - "
        "<level>{message}</level> {extra}"
    ),
    "full": (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "  # noqa: RUF027 - loguru format string
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level> {extra}"
    ),
}


class LoggingHandle:
    """Handle for managing diabtree logging lifecycle.

    Stores the handler ID from logger.add() and provides cleanup via disable()
    or automatically through the context manager protocol.

    Examples:
        >>> with enable_logging():  # doctest: +SKIP
        ...     logger.info("Temporary logging enabled")
    """

    _active_ids: ClassVar[set[int]] = set()
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, handler_id: int) -> None:
        """Initialize the logging handle.

        Args:
            handler_id (int): The loguru handler ID from logger.add().
        """
        self.handler_id: int | None = handler_id
        with LoggingHandle._lock:
            LoggingHandle._active_ids.add(handler_id)

    def disable(self) -> None:
        """Remove the handler associated with this logging handle.

        When this is the last active handle, ``logger.disable("diabtree")`` is
        called to suppress diabtree log messages again.
        """
        with LoggingHandle._lock:
            if self.handler_id is None:
                return
            LoggingHandle._active_ids.discard(self.handler_id)
            with contextlib.suppress(ValueError):
                logger.remove(self.handler_id)
            self.handler_id = None
            if not LoggingHandle._active_ids:
                logger.disable(PACKAGE_NAME)

    def __enter__(self) -> LoggingHandle:
        """Enter context manager.

        Returns:
            LoggingHandle: This handle instance.
        """
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager and disable logging.

        Args:
            exc_type (type[BaseException] | None): The exception type, if raised.
            exc_val (BaseException | None): The exception instance, if raised.
            exc_tb (TracebackType | None): The traceback, if raised.
        """
        self.disable()

    @classmethod
    def get_active_handle_count(cls) -> int:
        """Return the number of currently active logging handles.

        Returns:
            int: Count of active handles that have not been disabled.
        """
        with cls._lock:
            return len(cls._active_ids)


def enable_logging(
    *,
    level: LogLevel = "INFO",
    log_format: LogFormat = "short",
    sink: TextIO | None = None,
) -> LoggingHandle:
    """Enable diabtree logging.

    Args:
        level (LogLevel): Minimum log level to display. Defaults to "INFO",
            which shows training progress and every served request. Raise to
            "WARNING" to see only rejected requests and data problems.
        log_format (LogFormat): "short" (default) shows just the function name;
            "full" adds module:function:line; "json" writes one serialized
            record per line, with request fields such as `prediction` and
            `prob_diabetes` under `record.extra`, for log collectors.
        sink (TextIO | None): Stream to write to. Defaults to stderr.

    Returns:
        LoggingHandle: Independent handle for managing the logging handler.
    """
    logger.enable(PACKAGE_NAME)

    target = sys.stderr if sink is None else sink
    if log_format == "json":
        handler_id = logger.add(target, level=level, filter=_is_diabtree_record, serialize=True)
    else:
        handler_id = logger.add(target, level=level, filter=_is_diabtree_record, format=_TEXT_FORMATS[log_format])

    return LoggingHandle(handler_id)


def _is_diabtree_record(record: Record) -> bool:
    """Filter that passes only diabtree records.

    Args:
        record (Record): The loguru Record object to filter.

    Returns:
        bool: True if the record comes from the diabtree package.
    """
    name = record["name"]
    return name is not None and name.startswith(PACKAGE_NAME)
