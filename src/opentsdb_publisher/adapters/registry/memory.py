"""In-memory implementation of the meter registry for embedding and testing."""
import logging
import threading
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from opentsdb_publisher.adapters.registry.base import MeterRegistry
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
    Timer,
)
from opentsdb_publisher.utils.timing import wall_time_millis

logger = logging.getLogger(__name__)

Tags = Union[Mapping[str, str], Iterable[Tag], None]


def _to_tags(tags: Tags) -> Tuple[Tag, ...]:
    if tags is None:
        return ()
    if isinstance(tags, Mapping):
        return tuple(Tag(key=key, value=value) for key, value in tags.items())
    return tuple(tags)


class SimpleCounter(Counter):
    """Cumulative counter."""

    def __init__(self, meter_id: MeterId):
        self._id = meter_id
        self._count = 0.0
        self._lock = threading.Lock()

    @property
    def id(self) -> MeterId:
        return self._id

    def increment(self, amount: float = 1.0) -> None:
        with self._lock:
            self._count += amount

    def count(self) -> float:
        return self._count

    def measure(self) -> List[Measurement]:
        return [Measurement(statistic=Statistic.COUNT, value=self.count())]


class SimpleFunctionCounter(FunctionCounter):
    """Counter reading its count from a function."""

    def __init__(self, meter_id: MeterId, function: Callable[[], float]):
        self._id = meter_id
        self._function = function

    @property
    def id(self) -> MeterId:
        return self._id

    def count(self) -> float:
        return float(self._function())

    def measure(self) -> List[Measurement]:
        return [Measurement(statistic=Statistic.COUNT, value=self.count())]


class SimpleGauge(Gauge):
    """Gauge reading its value from a function."""

    def __init__(self, meter_id: MeterId, function: Callable[[], float]):
        self._id = meter_id
        self._function = function

    @property
    def id(self) -> MeterId:
        return self._id

    def value(self) -> float:
        return float(self._function())

    def measure(self) -> List[Measurement]:
        return [Measurement(statistic=Statistic.VALUE, value=self.value())]


class SimpleTimeGauge(TimeGauge):
    """Gauge reading a time value, expressed in ``function_unit``, from a function."""

    def __init__(self, meter_id: MeterId, function: Callable[[], float], function_unit: TimeUnit):
        self._id = meter_id
        self._function = function
        self._function_unit = function_unit

    @property
    def id(self) -> MeterId:
        return self._id

    def value(self, unit: Optional[TimeUnit] = None) -> float:
        return TimeUnit.convert(float(self._function()), self._function_unit, unit or self._function_unit)

    def measure(self) -> List[Measurement]:
        return [Measurement(statistic=Statistic.VALUE, value=self.value(TimeUnit.MILLISECONDS))]


class SimpleTimer(Timer):
    """Cumulative timer keeping count, total and maximum in nanoseconds."""

    def __init__(self, meter_id: MeterId):
        self._id = meter_id
        self._count = 0
        self._total_nanos = 0.0
        self._max_nanos = 0.0
        self._lock = threading.Lock()

    @property
    def id(self) -> MeterId:
        return self._id

    def record(self, amount: float, unit: TimeUnit = TimeUnit.MILLISECONDS) -> None:
        if amount < 0:
            return
        nanos = TimeUnit.convert(amount, unit, TimeUnit.NANOSECONDS)
        with self._lock:
            self._count += 1
            self._total_nanos += nanos
            self._max_nanos = max(self._max_nanos, nanos)

    def count(self) -> float:
        return self._count

    def total_time(self, unit: TimeUnit) -> float:
        return TimeUnit.convert(self._total_nanos, TimeUnit.NANOSECONDS, unit)

    def max(self, unit: TimeUnit) -> float:
        return TimeUnit.convert(self._max_nanos, TimeUnit.NANOSECONDS, unit)

    def measure(self) -> List[Measurement]:
        return [
            Measurement(statistic=Statistic.COUNT, value=self.count()),
            Measurement(statistic=Statistic.TOTAL_TIME, value=self.total_time(TimeUnit.MILLISECONDS)),
            Measurement(statistic=Statistic.MAX, value=self.max(TimeUnit.MILLISECONDS)),
        ]


class SimpleFunctionTimer(FunctionTimer):
    """Timer reading its count and total time from functions."""

    def __init__(
        self,
        meter_id: MeterId,
        count_function: Callable[[], float],
        total_time_function: Callable[[], float],
        total_time_unit: TimeUnit
    ):
        self._id = meter_id
        self._count_function = count_function
        self._total_time_function = total_time_function
        self._total_time_unit = total_time_unit

    @property
    def id(self) -> MeterId:
        return self._id

    def count(self) -> float:
        return float(self._count_function())

    def total_time(self, unit: TimeUnit) -> float:
        return TimeUnit.convert(float(self._total_time_function()), self._total_time_unit, unit)

    def measure(self) -> List[Measurement]:
        return [
            Measurement(statistic=Statistic.COUNT, value=self.count()),
            Measurement(statistic=Statistic.TOTAL_TIME, value=self.total_time(TimeUnit.MILLISECONDS)),
        ]


class SimpleDistributionSummary(DistributionSummary):
    """Cumulative distribution summary."""

    def __init__(self, meter_id: MeterId):
        self._id = meter_id
        self._count = 0
        self._total = 0.0
        self._max = 0.0
        self._lock = threading.Lock()

    @property
    def id(self) -> MeterId:
        return self._id

    def record(self, amount: float) -> None:
        if amount < 0:
            return
        with self._lock:
            self._count += 1
            self._total += amount
            self._max = max(self._max, amount)

    def count(self) -> float:
        return self._count

    def total_amount(self) -> float:
        return self._total

    def max(self) -> float:
        return self._max

    def measure(self) -> List[Measurement]:
        return [
            Measurement(statistic=Statistic.COUNT, value=self.count()),
            Measurement(statistic=Statistic.TOTAL, value=self.total_amount()),
            Measurement(statistic=Statistic.MAX, value=self.max()),
        ]


class SimpleLongTaskTimer(LongTaskTimer):
    """Long task timer tracking the start time of every running task."""

    def __init__(self, meter_id: MeterId, clock: Callable[[], int]):
        self._id = meter_id
        self._clock = clock
        self._tasks: Dict[int, int] = {}
        self._next_task = 0
        self._lock = threading.Lock()

    @property
    def id(self) -> MeterId:
        return self._id

    def start(self) -> int:
        """
        Start timing a task.

        Returns:
            int: Handle to pass to ``stop``
        """
        with self._lock:
            task = self._next_task
            self._next_task += 1
            self._tasks[task] = self._clock()
        return task

    def stop(self, task: int) -> float:
        """
        Stop timing a task.

        Args:
            task: Handle returned by ``start``

        Returns:
            float: Duration of the task in milliseconds, or -1 if the task is unknown
        """
        with self._lock:
            started = self._tasks.pop(task, None)
        if started is None:
            return -1.0
        return float(self._clock() - started)

    def active_tasks(self) -> int:
        return len(self._tasks)

    def duration(self, unit: TimeUnit) -> float:
        now = self._clock()
        with self._lock:
            millis = sum(now - started for started in self._tasks.values())
        return TimeUnit.convert(float(millis), TimeUnit.MILLISECONDS, unit)

    def measure(self) -> List[Measurement]:
        return [
            Measurement(statistic=Statistic.ACTIVE_TASKS, value=self.active_tasks()),
            Measurement(statistic=Statistic.DURATION, value=self.duration(TimeUnit.MILLISECONDS)),
        ]


class InMemoryMeterRegistry(MeterRegistry):
    """Thread-safe registry holding meters in memory."""

    def __init__(self, clock: Callable[[], int] = wall_time_millis):
        """
        Initialize the in-memory registry.

        Args:
            clock: Wall clock returning epoch milliseconds
        """
        self.clock = clock
        self._meters: Dict[MeterId, Meter] = {}
        self._lock = threading.Lock()

    def get_meters(self) -> List[Meter]:
        with self._lock:
            return list(self._meters.values())

    def wall_time(self) -> int:
        return self.clock()

    def register(self, meter: Meter) -> Meter:
        """
        Register a meter, returning the already registered one if the id is taken.

        Args:
            meter: Meter to register

        Returns:
            Meter: The registered meter

        Raises:
            ValueError: If the id is taken by a meter of another kind
        """
        with self._lock:
            existing = self._meters.get(meter.id)
            if existing is None:
                self._meters[meter.id] = meter
                logger.debug(f"Registered {meter.id.type.value} {meter.id.name}")
                return meter
        if type(existing) is not type(meter):
            raise ValueError(
                f"Meter {meter.id.name} is already registered as {type(existing).__name__}"
            )
        return existing

    def counter(self, name: str, tags: Tags = None, **kwargs) -> SimpleCounter:
        return self.register(SimpleCounter(self._id(name, tags, MeterType.COUNTER, **kwargs)))

    def function_counter(self, name: str, function: Callable[[], float], tags: Tags = None, **kwargs) -> SimpleFunctionCounter:
        meter_id = self._id(name, tags, MeterType.FUNCTION_COUNTER, **kwargs)
        return self.register(SimpleFunctionCounter(meter_id, function))

    def gauge(self, name: str, function: Callable[[], float], tags: Tags = None, **kwargs) -> SimpleGauge:
        return self.register(SimpleGauge(self._id(name, tags, MeterType.GAUGE, **kwargs), function))

    def time_gauge(
        self,
        name: str,
        function: Callable[[], float],
        function_unit: TimeUnit,
        tags: Tags = None,
        **kwargs
    ) -> SimpleTimeGauge:
        meter_id = self._id(name, tags, MeterType.TIME_GAUGE, **kwargs)
        return self.register(SimpleTimeGauge(meter_id, function, function_unit))

    def timer(self, name: str, tags: Tags = None, **kwargs) -> SimpleTimer:
        return self.register(SimpleTimer(self._id(name, tags, MeterType.TIMER, **kwargs)))

    def function_timer(
        self,
        name: str,
        count_function: Callable[[], float],
        total_time_function: Callable[[], float],
        total_time_unit: TimeUnit,
        tags: Tags = None,
        **kwargs
    ) -> SimpleFunctionTimer:
        meter_id = self._id(name, tags, MeterType.FUNCTION_TIMER, **kwargs)
        return self.register(SimpleFunctionTimer(meter_id, count_function, total_time_function, total_time_unit))

    def summary(self, name: str, tags: Tags = None, **kwargs) -> SimpleDistributionSummary:
        meter_id = self._id(name, tags, MeterType.DISTRIBUTION_SUMMARY, **kwargs)
        return self.register(SimpleDistributionSummary(meter_id))

    def long_task_timer(self, name: str, tags: Tags = None, **kwargs) -> SimpleLongTaskTimer:
        meter_id = self._id(name, tags, MeterType.LONG_TASK_TIMER, **kwargs)
        return self.register(SimpleLongTaskTimer(meter_id, self.clock))

    @staticmethod
    def _id(
        name: str,
        tags: Tags,
        meter_type: MeterType,
        base_unit: Optional[str] = None,
        description: Optional[str] = None
    ) -> MeterId:
        return MeterId(
            name=name,
            tags=_to_tags(tags),
            base_unit=base_unit,
            description=description,
            type=meter_type,
        )
