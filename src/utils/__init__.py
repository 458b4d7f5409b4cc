"""Utility modules."""

from .config import Settings, load_config
from .logging import get_logger, setup_logging

__all__ = ["Settings", "load_config", "get_logger", "setup_logging"]
