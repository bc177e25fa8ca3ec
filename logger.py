"""Structured logging with verbosity levels, colored console output and progress tracking."""

import copy
import logging
import logging.handlers
import time
from typing import Any, Dict, Optional

import colorlog

ROOT_LOGGER_NAME = 'confluence_space_importer'

DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging for the importer's logger tree.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
        log_file: Optional path to a rotating log file
        log_format: Optional custom log format string
        date_format: Optional custom date format string
        level: Optional explicit log level string; wins over verbosity

    Returns:
        The configured ``confluence_space_importer`` logger

    Raises:
        ValueError: If ``level`` is not a standard level name
    """
    if level:
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level_upper = level.upper()
        if level_upper not in allowed_levels:
            raise ValueError(
                f"Invalid log level '{level}'. Must be one of: {sorted(allowed_levels)}"
            )
        log_level = getattr(logging, level_upper)
    elif verbosity >= 2:
        log_level = logging.DEBUG
    elif verbosity >= 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    log_format = log_format or DEFAULT_LOG_FORMAT
    date_format = date_format or DEFAULT_DATE_FORMAT

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)
    logger.propagate = False

    # Repeated setup (tests, re-runs) must not stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(colorlog.ColoredFormatter(
        fmt='%(log_color)s' + log_format,
        datefmt=date_format,
        log_colors=LOG_COLORS
    ))
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
        except OSError as e:
            logger.warning(f"Failed to set up file logging: {str(e)}")
        else:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
            logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")

    logger.debug(f"Log level: {logging.getLevelName(log_level)}")
    return logger


class ProgressTracker:
    """Context manager that counts processed items and logs a summary on exit."""

    def __init__(self, total_items: int, item_type: str = "items", logger: Optional[logging.Logger] = None):
        """
        Initialize progress tracker.

        Args:
            total_items: Total number of items to process
            item_type: Description of item type (e.g., "pages")
            logger: Optional logger instance
        """
        self.total_items = total_items
        self.item_type = item_type
        self.processed_items = 0
        self.successful_items = 0
        self.failed_items = 0
        self.start_time: Optional[float] = None
        self.logger = logger or logging.getLogger(ROOT_LOGGER_NAME)

    def __enter__(self) -> 'ProgressTracker':
        self.start_time = time.time()
        self.logger.info(f"Starting processing of {self.total_items} {self.item_type}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is None:
            return

        if exc_type is not None or self.failed_items:
            log_method = self.logger.warning
        else:
            log_method = self.logger.info

        stats = self.get_stats()
        log_method(
            f"{self.item_type.capitalize()}: {stats['successful']}/{stats['total']} succeeded, "
            f"{stats['failed']} failed in {stats['elapsed_time_formatted']}"
        )

    def increment(self, success: bool = True) -> None:
        """
        Increment progress counter.

        Args:
            success: Whether the item was processed successfully
        """
        self.processed_items += 1
        if success:
            self.successful_items += 1
        else:
            self.failed_items += 1

        if self.processed_items % 50 == 0:
            self.logger.debug(f"Processed {self.processed_items}/{self.total_items} {self.item_type}")

    def get_stats(self) -> Dict[str, Any]:
        """Get current progress statistics."""
        elapsed = 0.0 if self.start_time is None else time.time() - self.start_time
        return {
            'total': self.total_items,
            'processed': self.processed_items,
            'successful': self.successful_items,
            'failed': self.failed_items,
            'elapsed_time': elapsed,
            'elapsed_time_formatted': format_elapsed(elapsed)
        }


def format_elapsed(seconds: float) -> str:
    """Format elapsed time in human-readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    seconds = int(seconds % 60)
    if minutes < 60:
        return f"{minutes}m {seconds}s"

    hours = minutes // 60
    minutes = minutes % 60
    return f"{hours}h {minutes}m {seconds}s"


def log_section(title: str) -> None:
    """
    Log a decorative section header.

    Args:
        title: Section title to display
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    separator = "=" * 60
    logger.info(separator)
    logger.info(f"  {title.upper()}")
    logger.info(separator)


def log_config(config: Dict[str, Any]) -> None:
    """
    Log sanitized import configuration for debugging.

    Args:
        config: Configuration dictionary to log
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    sanitized = _sanitize_config(config)

    log_section("Configuration")

    import_settings = sanitized.get('import', {})
    logger.info(f"Import Mode: {import_settings.get('mode', 'space')}")
    logger.info(f"Workspace: {import_settings.get('workspace_id', 'Not Set')}")
    logger.info(f"Creator: {import_settings.get('creator_id', 'Not Set')}")
    if import_settings.get('space_id'):
        logger.info(f"Target Space: {import_settings.get('space_id')}")
    logger.info(f"Orphan Policy: {import_settings.get('orphan_policy', 'skip')}")
    logger.info(f"Workers: {import_settings.get('max_workers', 4)}")
    logger.info(f"Compensate On Failure: {import_settings.get('compensate_on_failure', True)}")

    logger.info(f"Database: {sanitized.get('database', {}).get('path', 'Not Set')}")

    attachments = sanitized.get('attachments', {})
    logger.info(f"Attachment Storage: {attachments.get('storage_dir', 'Not Set')}")
    if attachments.get('max_file_size'):
        logger.info(f"Max Attachment Size: {attachments.get('max_file_size')} bytes")
    if attachments.get('skip_file_types'):
        logger.info(f"Skipped File Types: {', '.join(attachments.get('skip_file_types'))}")


def _sanitize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a sanitized copy of configuration with sensitive fields masked.

    Args:
        config: Configuration dictionary

    Returns:
        Sanitized configuration copy
    """
    sensitive_fields = {'password', 'secret', 'token', 'api_key', 'credential'}

    def mask_sensitive(data: Any) -> Any:
        if isinstance(data, dict):
            return {
                key: "***REDACTED***"
                if isinstance(value, str) and any(s in key.lower() for s in sensitive_fields)
                else mask_sensitive(value)
                for key, value in data.items()
            }
        if isinstance(data, list):
            return [mask_sensitive(item) for item in data]
        return data

    return mask_sensitive(copy.deepcopy(config))


__all__ = [
    'setup_logging',
    'ProgressTracker',
    'format_elapsed',
    'log_section',
    'log_config'
]
