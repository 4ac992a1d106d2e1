"""OpenTSDB data point model and its JSON rendering."""
import json
import math
from typing import Dict, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from opentsdb_publisher.core.models.meters import MeterType, Tag
from opentsdb_publisher.core.naming import NamingConvention

# The OpenTSDB HTTP API has no infinity token; these parse back to +/- infinity
POSITIVE_INFINITY = "1E400"
NEGATIVE_INFINITY = "-1E400"


class DataPoint(BaseModel):
    """
    One timestamped sample of a metric.

    Data points are built fresh for every publish, serialized and discarded.
    """

    model_config = ConfigDict(frozen=True)

    metric: str = Field(..., description="Name of the metric")
    timestamp: int = Field(..., description="Sample time in epoch milliseconds")
    value: Union[int, float, str] = Field(..., description="Sample value")
    tags: Dict[str, str] = Field(default_factory=dict, description="Ordered tags of the sample")
    series_type: str = Field("unknown", description="Kind of series the sample was derived from")

    @staticmethod
    def builder(metric: str) -> "DataPointBuilder":
        return DataPointBuilder(metric)

    def rendered_value(self) -> str:
        """Render the value as the string OpenTSDB receives."""
        value = self.value
        if isinstance(value, float):
            if math.isinf(value):
                return POSITIVE_INFINITY if value > 0 else NEGATIVE_INFINITY
            if math.isnan(value):
                return "NaN"
        return str(value)

    def to_json_string(self, naming_convention: NamingConvention) -> str:
        """
        Render this data point as an OpenTSDB HTTP API JSON object.

        The naming convention is applied to the metric name and tags first,
        then every string is JSON escaped. The value is sent as a JSON string.

        Example:
            {"metric":"sys.cpu.nice","timestamp":1346846400000,"value":"18","tags":{"host":"web01"}}

        Args:
            naming_convention: Convention used to sanitize names

        Returns:
            str: Compact JSON object
        """
        tags = ",".join(
            f"{_quote(naming_convention.tag_key(key))}:{_quote(naming_convention.tag_value(value))}"
            for key, value in self.tags.items()
        )
        return (
            "{"
            f"\"metric\":{_quote(naming_convention.name(self.metric, MeterType.OTHER))},"
            f"\"timestamp\":{self.timestamp},"
            f"\"value\":{_quote(self.rendered_value())},"
            f"\"tags\":{{{tags}}}"
            "}"
        )


class DataPointBuilder:
    """Accumulates the fields of a data point before it is frozen."""

    def __init__(self, metric: str):
        self._metric = metric
        self._timestamp: Optional[int] = None
        self._value: Union[int, float, str, None] = None
        self._tags: Dict[str, str] = {}
        self._series_type = "unknown"

    def with_value(self, value: Union[int, float, str]) -> "DataPointBuilder":
        self._value = value
        return self

    def with_timestamp(self, timestamp: int) -> "DataPointBuilder":
        self._timestamp = timestamp
        return self

    def with_tags(self, tags: Union[Iterable[Tag], Mapping[str, str], None]) -> "DataPointBuilder":
        if tags is None:
            return self
        if isinstance(tags, Mapping):
            self._tags.update(tags)
        else:
            for tag in tags:
                self._tags[tag.key] = tag.value
        return self

    def with_series_type(self, series_type: str) -> "DataPointBuilder":
        self._series_type = series_type
        return self

    def build(self) -> DataPoint:
        return DataPoint(
            metric=self._metric,
            timestamp=self._timestamp,
            value=self._value,
            tags=self._tags,
            series_type=self._series_type,
        )


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)
