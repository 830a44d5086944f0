"""Logging helpers."""
from .logger import get_root_logger, get_tracer, setup_logging

__all__ = ["get_root_logger", "get_tracer", "setup_logging"]
