"""Utility helpers for the training results webhook."""

from .clock import format_store_timestamp, parse_timestamp, to_store_timestamp, to_zone
from .logging import setup_logging

__all__ = [
    "parse_timestamp",
    "to_zone",
    "format_store_timestamp",
    "to_store_timestamp",
    "setup_logging",
]
