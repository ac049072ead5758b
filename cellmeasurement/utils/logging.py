"""
Logging for the cell measurement pipeline.

Every module gets its logger through ``get_logger(__name__)``; the CLI calls
``setup_logging`` once. Matching and measurement run on worker threads, so
the line format carries the thread name.

Pipeline stages are wrapped in ``ProcessingTimer``, which reports the stage
duration together with the object counts the stage produced:

    with ProcessingTimer(logger, "ROI matching") as timer:
        cells = make_cell_objects(...)
        timer.record(nuclei=len(nuclear), cells=len(cells))

    # Completed: ROI matching in 0.4 s (nuclei: 3, cells: 3)
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"

# Libraries that log per file/page at INFO
_NOISY_LOGGERS = ("tifffile", "PIL", "matplotlib")

_LEVEL_COLORS = {
    logging.DEBUG: '\033[36m',
    logging.INFO: '\033[32m',
    logging.WARNING: '\033[33m',
    logging.ERROR: '\033[31m',
    logging.CRITICAL: '\033[35m',
}
_RESET = '\033[0m'

_loggers: Dict[str, logging.Logger] = {}
_initialized = False


class ColoredFormatter(logging.Formatter):
    """Colour the level name on terminals."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno)
        if color is None:
            return text
        # Colour only the level field so the file handler sees the plain record
        return text.replace(record.levelname, f"{color}{record.levelname}{_RESET}", 1)


def get_logger(name: str) -> logging.Logger:
    """Cached module logger."""
    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)
    return _loggers[name]


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    colored: bool = True,
) -> logging.Logger:
    """
    Configure the root logger for a run.

    Args:
        level: Level name or number
        log_file: Also append log lines to this file
        colored: Colour level names when stdout is a terminal

    Returns:
        Root logger
    """
    global _initialized

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    if _initialized:
        root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    use_color = colored and sys.stdout.isatty()
    console.setFormatter(ColoredFormatter(LOG_FORMAT) if use_color else logging.Formatter(LOG_FORMAT))
    root.addHandler(console)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _initialized = True
    if log_file:
        root.info(f"Logging to file: {log_file}")
    return root


def _format_setting(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value) if value else "(none)"
    if value is None:
        return "(default)"
    return str(value)


def log_run_config(
    logger: logging.Logger,
    inputs: Mapping[str, Any],
    config: Mapping[str, Any],
) -> None:
    """
    Log the input files and effective settings of a run.

    List settings (percentiles, compartments, ...) are printed inline.
    """
    width = max((len(k) for k in list(inputs) + list(config)), default=0)
    logger.info("Cell measurement run")
    logger.info("  Inputs:")
    for key, value in inputs.items():
        logger.info(f"    {key:<{width}}  {value}")
    logger.info("  Settings:")
    for key, value in config.items():
        logger.info(f"    {key:<{width}}  {_format_setting(value)}")


def format_duration(seconds: float) -> str:
    if seconds >= 3600:
        return f"{seconds / 3600:.1f} h"
    if seconds >= 60:
        return f"{seconds / 60:.1f} min"
    return f"{seconds:.1f} s"


class ProcessingTimer:
    """
    Time one pipeline stage and report what it produced.

    Attributes:
        duration: Seconds spent in the block (set on exit)
        counts: Values passed to ``record``
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.duration: Optional[float] = None
        self.counts: Dict[str, Any] = {}
        self._start = 0.0

    def record(self, **counts: Any) -> None:
        self.counts.update(counts)

    def __enter__(self):
        self._start = time.perf_counter()
        self.logger.info(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self._start
        elapsed = format_duration(self.duration)
        if exc_type is not None:
            self.logger.error(f"Failed: {self.operation} after {elapsed}: {exc_val}")
            return False
        summary = ", ".join(f"{k}: {v}" for k, v in self.counts.items())
        suffix = f" ({summary})" if summary else ""
        self.logger.info(f"Completed: {self.operation} in {elapsed}{suffix}")
        return False
