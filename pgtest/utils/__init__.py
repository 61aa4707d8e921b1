"""Utility modules for pgtest."""

from .credentials import generate_password
from .logging import setup_logging, get_logger
from .ports import allocate_port

__all__ = [
    "generate_password",
    "setup_logging",
    "get_logger",
    "allocate_port",
]
