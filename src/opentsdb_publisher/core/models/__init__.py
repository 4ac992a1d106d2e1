"""Initialization file for the core models."""
from opentsdb_publisher.core.models.data_point import DataPoint, DataPointBuilder
from opentsdb_publisher.core.models.meters import (
    Counter,
    DistributionSummary,
    FunctionCounter,
    FunctionTimer,
    Gauge,
    LongTaskTimer,
    Measurement,
    Meter,
    MeterId,
    MeterType,
    Statistic,
    Tag,
    TimeGauge,
    TimeUnit,
    Timer
)
from opentsdb_publisher.core.models.results import PublishResult

__all__ = [
    "Counter",
    "DataPoint",
    "DataPointBuilder",
    "DistributionSummary",
    "FunctionCounter",
    "FunctionTimer",
    "Gauge",
    "LongTaskTimer",
    "Measurement",
    "Meter",
    "MeterId",
    "MeterType",
    "PublishResult",
    "Statistic",
    "Tag",
    "TimeGauge",
    "TimeUnit",
    "Timer"
]
