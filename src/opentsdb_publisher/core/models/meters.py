"""Meter identity and the abstract meter types exported by the publisher."""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class MeterType(str, Enum):
    """Kind of a meter as reported by the host registry."""

    COUNTER = "counter"
    GAUGE = "gauge"
    TIMER = "timer"
    DISTRIBUTION_SUMMARY = "distribution_summary"
    LONG_TASK_TIMER = "long_task_timer"
    OTHER = "other"
    FUNCTION_COUNTER = "function_counter"
    FUNCTION_TIMER = "function_timer"
    TIME_GAUGE = "time_gauge"


class Statistic(Enum):
    """Statistic reported by a meter measurement, valued by its display name."""

    TOTAL = "Total"
    TOTAL_TIME = "TotalTime"
    COUNT = "Count"
    MAX = "Max"
    VALUE = "Value"
    UNKNOWN = "Unknown"
    ACTIVE_TASKS = "ActiveTasks"
    DURATION = "Duration"

    def __str__(self) -> str:
        return self.value


class TimeUnit(Enum):
    """Time units, valued by their length in nanoseconds."""

    NANOSECONDS = 1
    MICROSECONDS = 1_000
    MILLISECONDS = 1_000_000
    SECONDS = 1_000_000_000
    MINUTES = 60_000_000_000
    HOURS = 3_600_000_000_000
    DAYS = 86_400_000_000_000

    @staticmethod
    def convert(amount: float, source: "TimeUnit", target: "TimeUnit") -> float:
        """
        Convert an amount of time between units.

        Args:
            amount: Amount of time expressed in ``source`` units
            source: Unit the amount is expressed in
            target: Unit to convert to

        Returns:
            float: The amount expressed in ``target`` units
        """
        if source is target:
            return amount
        return amount * source.value / target.value


class Tag(BaseModel):
    """Key/value dimension attached to a meter."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Tag key")
    value: str = Field(..., description="Tag value")


class MeterId(BaseModel):
    """Identity of a meter: name, tags, unit, description and kind."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Name of the meter")
    tags: Tuple[Tag, ...] = Field(default_factory=tuple, description="Ordered tags of the meter")
    base_unit: Optional[str] = Field(None, description="Base unit of measurement")
    description: Optional[str] = Field(None, description="Human readable description")
    type: MeterType = Field(MeterType.OTHER, description="Kind of meter")

    def with_suffix(self, suffix: str) -> "MeterId":
        """Copy tags, unit, description and type from this id, but change the name."""
        return self.model_copy(update={"name": f"{self.name}.{suffix}"})


class Measurement(BaseModel):
    """A single statistic reading of a meter."""

    model_config = ConfigDict(frozen=True)

    statistic: Statistic
    value: float


class Meter(ABC):
    """Base interface for every meter held by a registry."""

    @property
    @abstractmethod
    def id(self) -> MeterId:
        """Identity of the meter."""
        pass

    @abstractmethod
    def measure(self) -> Iterable[Measurement]:
        """
        Read the current statistics of the meter.

        Returns:
            Iterable[Measurement]: One measurement per statistic the meter tracks
        """
        pass


class Counter(Meter):
    """Monotonically increasing count."""

    @abstractmethod
    def count(self) -> float:
        pass


class FunctionCounter(Meter):
    """Count read from an external monotonically increasing function."""

    @abstractmethod
    def count(self) -> float:
        pass


class Gauge(Meter):
    """Instantaneous value that can go up and down."""

    @abstractmethod
    def value(self) -> float:
        pass


class TimeGauge(Gauge):
    """Gauge tracking a time value, read in a requested unit."""

    @abstractmethod
    def value(self, unit: Optional[TimeUnit] = None) -> float:
        pass


class Timer(Meter):
    """Records event counts and durations, tracking the maximum."""

    @abstractmethod
    def count(self) -> float:
        pass

    @abstractmethod
    def total_time(self, unit: TimeUnit) -> float:
        pass

    @abstractmethod
    def max(self, unit: TimeUnit) -> float:
        pass

    def mean(self, unit: TimeUnit) -> float:
        count = self.count()
        return self.total_time(unit) / count if count else 0.0


class FunctionTimer(Meter):
    """Timer derived from an external count and total time; no maximum."""

    @abstractmethod
    def count(self) -> float:
        pass

    @abstractmethod
    def total_time(self, unit: TimeUnit) -> float:
        pass

    def mean(self, unit: TimeUnit) -> float:
        count = self.count()
        return self.total_time(unit) / count if count else 0.0


class DistributionSummary(Meter):
    """Records the distribution of amounts in their native unit."""

    @abstractmethod
    def count(self) -> float:
        pass

    @abstractmethod
    def total_amount(self) -> float:
        pass

    @abstractmethod
    def max(self) -> float:
        pass

    def mean(self) -> float:
        count = self.count()
        return self.total_amount() / count if count else 0.0


class LongTaskTimer(Meter):
    """Tracks tasks that are still running."""

    @abstractmethod
    def active_tasks(self) -> int:
        pass

    @abstractmethod
    def duration(self, unit: TimeUnit) -> float:
        pass
