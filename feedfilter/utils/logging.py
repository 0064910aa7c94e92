"""
FeedFilter Logging Configuration
================================

Console logging setup plus the bounded, size-capped file streams that give
every component its own durable log (``logs/monitor.log``,
``logs/update.log`` ...).
"""

import logging
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional, Union


LOG_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
TRIM_MARKER = "[LOG TRIMMED: Removed {count} oldest entries to maintain size limit]"

DEFAULT_MAX_FILE_SIZE_BYTES = 100 * 1024
DEFAULT_TRIM_BATCH_SIZE = 50

# One lock per resolved log path, shared by every writer of that path
_stream_locks: Dict[Path, threading.Lock] = {}
_stream_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    with _stream_locks_guard:
        lock = _stream_locks.get(path)
        if lock is None:
            lock = threading.Lock()
            _stream_locks[path] = lock
        return lock


class BoundedLogWriter:
    """Append-only log file that trims its oldest lines past a size ceiling."""

    def __init__(
        self,
        path: Union[str, Path],
        max_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES,
        trim_batch_size: int = DEFAULT_TRIM_BATCH_SIZE,
    ):
        """Initialize the writer.

        Args:
            path: Log file path (parent directories are created on demand)
            max_size_bytes: Size above which the file is trimmed before writing
            trim_batch_size: Number of oldest lines dropped per trim
        """
        self.path = Path(path).absolute()
        self.max_size_bytes = max_size_bytes
        self.trim_batch_size = trim_batch_size
        self._lock = _lock_for(self.path)

    def write(self, message: str) -> None:
        """Append a timestamped entry. Never raises; failures go to stderr."""
        try:
            with self._lock:
                if not self.path.exists():
                    self.path.parent.mkdir(parents=True, exist_ok=True)
                    self.path.touch()

                if self.path.stat().st_size > self.max_size_bytes:
                    self._trim_oldest_entries()

                self._append(message)
        except Exception as e:
            print(f"Failed to write to log file {self.path}: {e}", file=sys.stderr)

    def _trim_oldest_entries(self) -> None:
        try:
            # Entries are separated by "\n" only; other line breaks inside a
            # message belong to that entry
            with open(self.path, "r", encoding="utf-8", errors="replace", newline="") as handle:
                lines = handle.read().split("\n")
            if lines and lines[-1] == "":
                lines.pop()

            if len(lines) <= self.trim_batch_size:
                return

            remaining = lines[self.trim_batch_size:]
            with open(
                self.path, "w", encoding="utf-8", errors="backslashreplace", newline=""
            ) as handle:
                handle.writelines(f"{line}\n" for line in remaining)

            self._append(TRIM_MARKER.format(count=self.trim_batch_size))
        except Exception as e:
            print(f"Failed to trim log file {self.path}: {e}", file=sys.stderr)

    def _append(self, message: str) -> None:
        timestamp = datetime.now().strftime(LOG_TIMESTAMP_FORMAT)
        with open(
            self.path, "a", encoding="utf-8", errors="backslashreplace", newline=""
        ) as handle:
            handle.write(f"{timestamp} - {message}\n")


class BoundedFileHandler(logging.Handler):
    """Logging handler that routes records into a BoundedLogWriter."""

    def __init__(self, writer: BoundedLogWriter, level: int = logging.NOTSET):
        super().__init__(level)
        self.writer = writer
        self.setFormatter(logging.Formatter("%(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.writer.write(self.format(record))
        except Exception:
            self.handleError(record)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors for console output."""
        color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        reset = self.COLORS["RESET"]

        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        formatted = (
            f"{color}[{timestamp}] {record.levelname:8}{reset} "
            f"{record.name}:{record.funcName}:{record.lineno} - "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def setup_logger(
    name: str = "feedfilter",
    level: str = "INFO",
    console: bool = True,
) -> logging.Logger:
    """Set up the console side of a logger.

    Args:
        name: Logger name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        console: Whether to log to console

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Clear console handlers from a previous call; bounded file handlers
    # live on the component loggers and are left alone
    for handler in list(logger.handlers):
        if not isinstance(handler, BoundedFileHandler):
            logger.removeHandler(handler)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logger.level)
        console_handler.setFormatter(ColoredConsoleFormatter())
        logger.addHandler(console_handler)

    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """Custom logger adapter for adding context to log messages."""

    def __init__(self, logger: logging.Logger, extra: Dict[str, Any]):
        super().__init__(logger, extra)

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple:
        """Process log message with extra context."""
        if "extra" in kwargs:
            kwargs["extra"].update(self.extra)
        else:
            kwargs["extra"] = self.extra.copy()

        return msg, kwargs


def get_logger_for_component(component_name: str) -> LoggerAdapter:
    """Get a logger adapter with component-specific context.

    Args:
        component_name: Name of the component (e.g., 'monitor', 'update')

    Returns:
        Logger adapter with context
    """
    base_logger = logging.getLogger(f"feedfilter.{component_name}")
    return LoggerAdapter(base_logger, {"component": component_name})


class BoundedLogFactory:
    """Creates one bounded log stream per component name."""

    def __init__(
        self,
        log_directory: Union[str, Path] = "logs",
        max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES,
        buffer_size: int = DEFAULT_TRIM_BATCH_SIZE,
    ):
        self.log_directory = Path(log_directory)
        self.max_file_size_bytes = max_file_size_bytes
        self.buffer_size = buffer_size
        self._writers: Dict[str, BoundedLogWriter] = {}
        self._guard = threading.Lock()

    def get_writer(self, name: str) -> BoundedLogWriter:
        """Return the writer for a stream, creating it on first use."""
        with self._guard:
            writer = self._writers.get(name)
            if writer is None:
                writer = BoundedLogWriter(
                    self.log_directory / f"{name}.log",
                    max_size_bytes=self.max_file_size_bytes,
                    trim_batch_size=self.buffer_size,
                )
                self._writers[name] = writer
            return writer

    def create_logger(self, name: str) -> LoggerAdapter:
        """Return a component logger whose records land in ``<name>.log``."""
        writer = self.get_writer(name)
        adapter = get_logger_for_component(name)
        base_logger = adapter.logger

        # Swap any handler left over from an earlier factory
        for handler in list(base_logger.handlers):
            if isinstance(handler, BoundedFileHandler):
                if handler.writer is writer:
                    return adapter
                base_logger.removeHandler(handler)

        # File streams keep INFO events whatever the console level is
        if base_logger.getEffectiveLevel() > logging.INFO:
            base_logger.setLevel(logging.INFO)

        base_logger.addHandler(BoundedFileHandler(writer))
        return adapter

    def log(self, stream_name: str, message: str) -> None:
        """Write a message straight into a named stream."""
        self.get_writer(stream_name).write(message)


def configure_application_logging(
    log_level: str = "INFO",
    enable_console: bool = True,
    log_factory: Optional[BoundedLogFactory] = None,
    components: tuple = ("monitor", "update", "server"),
) -> None:
    """Configure application-wide logging settings.

    Args:
        log_level: Global log level
        enable_console: Whether to enable console logging
        log_factory: Factory for the per-component bounded log files
        components: Component streams to attach to the factory
    """
    setup_logger(name="feedfilter", level=log_level, console=enable_console)

    if log_factory is not None:
        for component in components:
            log_factory.create_logger(component)

    # Configure third-party library logging levels
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.client").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


class PerformanceLogger:
    """Context manager for performance logging."""

    def __init__(self, logger: logging.Logger, operation: str, **kwargs):
        """Initialize performance logger.

        Args:
            logger: Logger instance
            operation: Operation being timed
            **kwargs: Additional context for the operation
        """
        self.logger = logger
        self.operation = operation
        self.context = kwargs
        self.start_time = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = datetime.now(timezone.utc)
        self.logger.debug(f"Starting {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time:
            duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()

            context = {
                **self.context,
                "duration_seconds": duration,
                "success": exc_type is None,
            }

            if exc_type:
                self.logger.error(
                    f"Failed {self.operation} in {duration:.3f}s", extra=context
                )
            else:
                self.logger.info(
                    f"Completed {self.operation} in {duration:.3f}s", extra=context
                )
