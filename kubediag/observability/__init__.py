"""Logging and metrics for kubediag."""

from kubediag.observability.logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
