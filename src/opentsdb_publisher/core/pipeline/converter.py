"""Conversion of meters into OpenTSDB data points."""
import logging
import math
import re
from typing import Callable, Iterator, List, Optional, Tuple, Type, Union

from opentsdb_publisher.core.models.data_point import DataPoint
from opentsdb_publisher.core.models.meters import (
    Counter,
    DistributionSummary,
    FunctionCounter,
    FunctionTimer,
    Gauge,
    LongTaskTimer,
    Meter,
    MeterId,
    Statistic,
    TimeGauge,
    TimeUnit,
    Timer,
)

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(.)([A-Z])")


def statistic_suffix(statistic: Union[Statistic, str]) -> str:
    """Turn a statistic display name like ``TotalTime`` into ``total_time``."""
    return _CAMEL_BOUNDARY.sub(r"\1_\2", str(statistic)).lower()


class MeterConverter:
    """
    Converts meters into the data points sent to OpenTSDB.

    Meter kinds are matched in a fixed priority order because some kinds
    specialize others (a time gauge is a gauge); meters of any other kind
    fall back to one data point per measured statistic.
    """

    def __init__(
        self,
        wall_time: Callable[[], int],
        base_time_unit: TimeUnit = TimeUnit.MILLISECONDS
    ):
        """
        Initialize the converter.

        Args:
            wall_time: Clock returning the current time in epoch milliseconds
            base_time_unit: Unit durations are reported in
        """
        self.wall_time = wall_time
        self.base_time_unit = base_time_unit
        self._writers: List[Tuple[Type[Meter], Callable[[Meter, int], Iterator[DataPoint]]]] = [
            (Timer, self._write_timer),
            (DistributionSummary, self._write_summary),
            (FunctionTimer, self._write_function_timer),
            (TimeGauge, self._write_time_gauge),
            (Gauge, self._write_gauge),
            (FunctionCounter, self._write_counter),
            (Counter, self._write_counter),
            (LongTaskTimer, self._write_long_task_timer),
        ]

    def convert(self, meter: Meter) -> Iterator[DataPoint]:
        """
        Convert a meter into data points.

        The timestamp is read once, when this method is called, and shared by
        every data point of the meter. Statistics are read lazily while the
        returned iterator is consumed.

        Args:
            meter: Meter to convert

        Returns:
            Iterator[DataPoint]: Single-use iterator over the meter's data points
        """
        wall_time = self.wall_time()
        for meter_type, writer in self._writers:
            if isinstance(meter, meter_type):
                return writer(meter, wall_time)
        return self._write_meter(meter, wall_time)

    def _write_timer(self, timer: Timer, wall_time: int) -> Iterator[DataPoint]:
        unit = self.base_time_unit
        yield self._data_point(timer.id, "sum", "histogram", timer.total_time(unit), wall_time)
        yield self._data_point(timer.id, "count", "histogram", timer.count(), wall_time)
        yield self._data_point(timer.id, "mean", "histogram", timer.mean(unit), wall_time)
        yield self._data_point(timer.id, "upper", "histogram", timer.max(unit), wall_time)

    def _write_summary(self, summary: DistributionSummary, wall_time: int) -> Iterator[DataPoint]:
        yield self._data_point(summary.id, "sum", "histogram", summary.total_amount(), wall_time)
        yield self._data_point(summary.id, "count", "histogram", summary.count(), wall_time)
        yield self._data_point(summary.id, "mean", "histogram", summary.mean(), wall_time)
        yield self._data_point(summary.id, "upper", "histogram", summary.max(), wall_time)

    def _write_function_timer(self, timer: FunctionTimer, wall_time: int) -> Iterator[DataPoint]:
        unit = self.base_time_unit
        yield self._data_point(timer.id, "sum", "histogram", timer.total_time(unit), wall_time)
        yield self._data_point(timer.id, "count", "histogram", timer.count(), wall_time)
        yield self._data_point(timer.id, "mean", "histogram", timer.mean(unit), wall_time)

    def _write_time_gauge(self, gauge: TimeGauge, wall_time: int) -> Iterator[DataPoint]:
        yield from self._write_gauge_value(gauge.id, gauge.value(self.base_time_unit), wall_time)

    def _write_gauge(self, gauge: Gauge, wall_time: int) -> Iterator[DataPoint]:
        yield from self._write_gauge_value(gauge.id, gauge.value(), wall_time)

    def _write_gauge_value(self, meter_id: MeterId, value: float, wall_time: int) -> Iterator[DataPoint]:
        # OpenTSDB has no representation for an undefined value
        if isinstance(value, float) and math.isnan(value):
            logger.debug(f"Skipping NaN gauge {meter_id.name}")
            return
        yield self._data_point(meter_id, None, "gauge", value, wall_time)

    def _write_counter(self, counter: Union[Counter, FunctionCounter], wall_time: int) -> Iterator[DataPoint]:
        yield self._data_point(counter.id, None, "counter", counter.count(), wall_time)

    def _write_long_task_timer(self, timer: LongTaskTimer, wall_time: int) -> Iterator[DataPoint]:
        yield self._data_point(timer.id, "active_tasks", "long_task_timer", timer.active_tasks(), wall_time)
        yield self._data_point(
            timer.id, "duration", "long_task_timer", timer.duration(self.base_time_unit), wall_time
        )

    def _write_meter(self, meter: Meter, wall_time: int) -> Iterator[DataPoint]:
        for measurement in meter.measure():
            suffix = statistic_suffix(measurement.statistic)
            yield self._data_point(meter.id, suffix, "unknown", measurement.value, wall_time)

    @staticmethod
    def _data_point(
        meter_id: MeterId,
        suffix: Optional[str],
        series_type: str,
        value: Union[int, float],
        wall_time: int
    ) -> DataPoint:
        full_id = meter_id.with_suffix(suffix) if suffix is not None else meter_id
        return (
            DataPoint.builder(full_id.name)
            .with_tags(full_id.tags)
            .with_timestamp(wall_time)
            .with_value(value)
            .with_series_type(series_type)
            .build()
        )
