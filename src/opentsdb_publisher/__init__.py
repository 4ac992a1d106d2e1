"""Publishes application meters to OpenTSDB over its HTTP API."""
from opentsdb_publisher.adapters.registry import InMemoryMeterRegistry, MeterRegistry
from opentsdb_publisher.core.config import OpenTsdbConfig
from opentsdb_publisher.core.naming import OpenTsdbNamingConvention
from opentsdb_publisher.core.pipeline.publisher import OpenTsdbPublisher, basic_auth_requester

__version__ = "0.1.0"

__all__ = [
    "InMemoryMeterRegistry",
    "MeterRegistry",
    "OpenTsdbConfig",
    "OpenTsdbNamingConvention",
    "OpenTsdbPublisher",
    "basic_auth_requester",
]
