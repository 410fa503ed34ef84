import logging
import os
import sys
from typing import Dict, Optional


class PathMaskingFilter(logging.Filter):
    """Filter that rewrites absolute storage-root paths to short labels in log records."""

    def __init__(self, roots: Optional[Dict[str, str]] = None):
        super().__init__()
        self.roots: Dict[str, str] = {}
        for label, root in (roots or {}).items():
            self.add_root(label, root)

    def add_root(self, label: str, root: str) -> None:
        """
        Register a storage root to be masked.

        Args:
            label: Replacement text (e.g., '<chunks>')
            root: Absolute directory path to replace
        """
        self.roots[os.path.abspath(root)] = label

    def filter(self, record: logging.LogRecord) -> bool:
        """Mask storage roots in the log message and its arguments."""
        if isinstance(record.msg, str):
            record.msg = self._mask_value(record.msg)

        if hasattr(record, 'args') and record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._mask_value(arg) for arg in record.args)

        return True

    def _mask_value(self, value):
        if isinstance(value, str):
            # longest first so nested roots (uploads/chunks inside uploads) win
            for root in sorted(self.roots, key=len, reverse=True):
                value = value.replace(root, self.roots[root])
        return value


def setup_logging(
    component_name: str,
    log_level: Optional[str] = None,
    request_id: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging configuration for a component.

    Args:
        component_name: Name of the component (e.g., 'gateway', 'assembler', 'cli')
        log_level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL env var or INFO
        request_id: Optional request ID to include in log format

    Returns:
        Configured logger instance
    """
    if log_level is None:
        log_level = os.getenv('LOG_LEVEL', 'INFO')

    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(component_name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(_build_formatter(request_id))
    handler.addFilter(PathMaskingFilter())

    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def mask_storage_roots(logger: logging.Logger, roots: Dict[str, str]) -> None:
    """
    Register storage roots on every PathMaskingFilter attached to the logger's handlers.

    Args:
        logger: Component logger returned by setup_logging
        roots: Mapping of label -> root directory
    """
    for handler in logger.handlers:
        for f in handler.filters:
            if isinstance(f, PathMaskingFilter):
                for label, root in roots.items():
                    f.add_root(label, root)


def _build_formatter(request_id: Optional[str] = None) -> logging.Formatter:
    if request_id:
        fmt = f'%(asctime)s - %(name)s - %(levelname)s - [{request_id}] - %(message)s'
    else:
        fmt = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    return logging.Formatter(fmt, datefmt='%Y-%m-%d %H:%M:%S')
