"""
Logging for dynocc-jax.

Every module obtains a ``DynOccLogger`` via ``get_logger(__name__)``. Messages
accept keyword context that is rendered as ``key=value`` pairs after the
message, e.g. ``model=true | sites=100``. Handlers are attached lazily from
the ``logging`` section of the active configuration, so ``setup_logging`` can
change level or destination after loggers were created at import time.
"""

import logging
import sys
import time
import functools
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional, Union
from ..config.settings import get_default_config, LogLevel


_LEVEL_COLORS = {
    logging.DEBUG: '\033[36m',
    logging.INFO: '\033[32m',
    logging.WARNING: '\033[33m',
    logging.ERROR: '\033[31m',
    logging.CRITICAL: '\033[35m',
}
_RESET = '\033[0m'


def _level_number(level) -> int:
    """Numeric level for a LogLevel member or its name."""
    return getattr(logging, str(getattr(level, "value", level)).upper())


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name on TTYs."""

    def __init__(self, fmt: Optional[str] = None, use_color: bool = True):
        super().__init__(fmt)
        self.use_color = use_color

    def format(self, record):
        color = _LEVEL_COLORS.get(record.levelno)
        if not (self.use_color and color):
            return super().format(record)
        original = record.levelname
        record.levelname = f"{color}{original}{_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _render_context(context: Dict[str, Any]) -> str:
    parts = []
    for key, value in context.items():
        if isinstance(value, float):
            value = f"{value:.6g}"
        parts.append(f"{key}={value}")
    return " | ".join(parts)


class DynOccLogger:
    """
    Thin wrapper over a stdlib logger.

    ``bind`` returns a child wrapper whose context is prepended to every
    message, which keeps per-model or per-replicate identifiers out of the
    individual log calls.
    """

    def __init__(self, name: str, config=None, context: Optional[Dict[str, Any]] = None):
        self.name = name
        self._config = config
        self._context = dict(context or {})
        self.logger = logging.getLogger(name)

    @property
    def config(self):
        return self._config or get_default_config()

    def bind(self, **context) -> "DynOccLogger":
        merged = {**self._context, **context}
        return DynOccLogger(self.name, config=self._config, context=merged)

    def _attach_handlers(self):
        settings = self.config.logging
        self.logger.setLevel(_level_number(settings.level))
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        if settings.console_logging:
            stream = logging.StreamHandler(sys.stdout)
            stream.setFormatter(
                ColoredFormatter(settings.format_string, use_color=sys.stdout.isatty())
            )
            self.logger.addHandler(stream)

        if settings.file_logging and settings.log_file:
            log_file = Path(settings.log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(logging.Formatter(settings.format_string))
            self.logger.addHandler(file_handler)

        self.logger.propagate = False
        _configured.add(self.name)

    def _log(self, level: int, message: str, context: Dict[str, Any], exc_info: bool = False):
        if self.name not in _configured:
            self._attach_handlers()
        if not self.logger.isEnabledFor(level):
            return
        merged = {**self._context, **context}
        if merged:
            message = f"{message} | {_render_context(merged)}"
        self.logger.log(level, message, exc_info=exc_info)

    def debug(self, message: str, /, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, /, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, /, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, /, **context):
        self._log(logging.ERROR, message, context)

    def critical(self, message: str, /, **context):
        self._log(logging.CRITICAL, message, context)

    def exception(self, message: str, /, **context):
        """Log at ERROR level with the active traceback attached."""
        self._log(logging.ERROR, message, context, exc_info=True)


_loggers: Dict[str, DynOccLogger] = {}
_configured = set()


def get_logger(name: str = "dynocc_jax") -> DynOccLogger:
    """Return the shared wrapper for ``name``, creating it on first use."""
    if name not in _loggers:
        _loggers[name] = DynOccLogger(name)
    return _loggers[name]


def setup_logging(
    level: Optional[Union[str, LogLevel]] = None,
    console: Optional[bool] = None,
    file_path: Optional[Union[str, Path]] = None,
    format_string: Optional[str] = None
) -> None:
    """
    Update the process-wide logging settings.

    Only the arguments that are given are changed. Existing loggers pick up
    the new settings on their next message.

    Args:
        level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL
        console: Write to stdout
        file_path: Also append to this file
        format_string: ``logging.Formatter`` format
    """
    settings = get_default_config().logging

    if level is not None:
        settings.level = LogLevel(str(getattr(level, "value", level)).upper())
    if console is not None:
        settings.console_logging = console
    if file_path is not None:
        settings.file_logging = True
        settings.log_file = Path(file_path)
    if format_string is not None:
        settings.format_string = format_string

    _configured.clear()


@contextmanager
def log_stage(stage: str, logger: Optional[DynOccLogger] = None, **context):
    """Log the start and elapsed time of a pipeline stage."""
    logger = logger or get_logger()
    logger.debug(f"Starting {stage}", **context)
    started = time.perf_counter()
    try:
        yield
    except Exception:
        logger.error(f"{stage} failed", elapsed_seconds=time.perf_counter() - started, **context)
        raise
    logger.info(f"{stage} finished", elapsed_seconds=time.perf_counter() - started, **context)


def log_performance(func):
    """Decorator form of ``log_stage`` keyed on the function name."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        with log_stage(func.__name__, get_logger(func.__module__)):
            return func(*args, **kwargs)
    return wrapper
