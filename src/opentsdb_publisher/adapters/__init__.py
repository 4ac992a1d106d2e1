"""Initialization file for the adapters module."""
from opentsdb_publisher.adapters import registry

__all__ = ["registry"]
