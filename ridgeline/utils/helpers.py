import logging
import sys

from ridgeline import config


def setup_logging(logger_name, log_file=None, level=None):
    """Configure logging to console, and optionally a file, with different levels"""

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Create logger
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)

    # Console handler (INFO and above unless overridden)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level or config.DEFAULT_LOG_LEVEL)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (DEBUG and above)
    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(logger_name):
    existing_logger = logging.getLogger(logger_name)
    if not existing_logger.handlers:  # Check if handlers already exist
        return setup_logging(logger_name)
    return existing_logger


def clamp(value, low=0.0, high=1.0):
    """Clamp a scalar to [low, high]."""
    return max(low, min(high, value))
