"""Core utilities shared by every aidit package."""

from .log import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
