"""Initialization file for the meter registries."""
from opentsdb_publisher.adapters.registry.base import MeterRegistry
from opentsdb_publisher.adapters.registry.memory import InMemoryMeterRegistry

__all__ = ["MeterRegistry", "InMemoryMeterRegistry"]
