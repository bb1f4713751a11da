"""Shared utilities for the ridgeline terrain engine."""

from .helpers import setup_logging, get_logger, clamp

__all__ = ["setup_logging", "get_logger", "clamp"]
