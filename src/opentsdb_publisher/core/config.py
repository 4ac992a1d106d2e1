"""Configuration for the OpenTSDB publisher."""
import os
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

DEFAULT_PREFIX = "opentsdb"

# Property key suffix -> field name
_PROPERTY_KEYS = {
    "uri": "uri",
    "userName": "user_name",
    "password": "password",
    "compressed": "compressed",
    "batchSize": "batch_size",
    "connectTimeout": "connect_timeout",
    "readTimeout": "read_timeout",
    "step": "step",
    "enabled": "enabled",
}

_FALSE_VALUES = {"false", "0", "no", "off"}

# Checked in order, so "ms" must come before "s" and "m"
_DURATION_SUFFIXES = (
    ("ms", "milliseconds"),
    ("s", "seconds"),
    ("m", "minutes"),
    ("h", "hours"),
    ("d", "days"),
)


def _is_number(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


class OpenTsdbConfig(BaseModel):
    """Options for publishing to OpenTSDB, including the step registry options."""

    model_config = ConfigDict(frozen=True)

    prefix: str = Field(DEFAULT_PREFIX, description="Prefix of the configuration properties")
    uri: str = Field("http://localhost:8086", description="Base URI of the OpenTSDB backend")
    user_name: Optional[str] = Field(None, description="User to authenticate requests with")
    password: Optional[str] = Field(None, description="Password to authenticate requests with")
    compressed: bool = Field(True, description="Whether publish batches are GZIP compressed")
    batch_size: int = Field(10000, description="Maximum number of meters sent per request")
    connect_timeout: timedelta = Field(timedelta(seconds=1), description="HTTP connect timeout")
    read_timeout: timedelta = Field(timedelta(seconds=10), description="HTTP read timeout")
    step: timedelta = Field(timedelta(minutes=1), description="Interval between publishes")
    enabled: bool = Field(True, description="Whether publishing is enabled")

    @field_validator("batch_size")
    @classmethod
    def check_batch_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("batch_size must be a positive integer")
        return v

    @field_validator("connect_timeout", "read_timeout", "step")
    @classmethod
    def check_positive_duration(cls, v: timedelta, info: ValidationInfo) -> timedelta:
        if v.total_seconds() <= 0:
            raise ValueError(f"{info.field_name} must be a positive duration")
        return v

    @field_validator("connect_timeout", "read_timeout", "step", mode="before")
    @classmethod
    def parse_duration(cls, v: Any) -> Any:
        """Accept plain seconds and short forms like ``500ms`` or ``10s`` next to ISO-8601."""
        if not isinstance(v, str):
            return v
        text = v.strip().lower()
        try:
            for suffix, unit in _DURATION_SUFFIXES:
                number = text[:-len(suffix)] if text.endswith(suffix) else None
                if number and _is_number(number):
                    return timedelta(**{unit: float(number)})
            if _is_number(text):
                return timedelta(seconds=float(text))
        except OverflowError as e:
            raise ValueError(f"duration '{v}' is out of range") from e
        return v

    @field_validator("compressed", mode="before")
    @classmethod
    def parse_compressed(cls, v: Any) -> Any:
        """Anything but an explicit false value turns compression on."""
        if isinstance(v, str):
            return v.strip().lower() not in _FALSE_VALUES
        return v

    @classmethod
    def from_properties(
        cls,
        get: Callable[[str], Optional[str]],
        prefix: str = DEFAULT_PREFIX
    ) -> "OpenTsdbConfig":
        """
        Build a configuration from a property lookup.

        Args:
            get: Callable returning the value of a property key, or None if unset
            prefix: Prefix of the property keys (e.g. ``opentsdb.uri``)

        Returns:
            OpenTsdbConfig: Configuration with unset properties left at their defaults
        """
        values: Dict[str, Any] = {"prefix": prefix}
        for key, field_name in _PROPERTY_KEYS.items():
            value = get(f"{prefix}.{key}")
            if value is not None:
                values[field_name] = value
        return cls(**values)

    @classmethod
    def from_env(
        cls,
        dotenv_path: Optional[str] = None,
        prefix: str = DEFAULT_PREFIX
    ) -> "OpenTsdbConfig":
        """
        Build a configuration from environment variables such as ``OPENTSDB_URI``.

        Variables set in the process environment take precedence over the
        ones read from the ``.env`` file.

        Args:
            dotenv_path: Optional path of a .env file, looked up from the working directory if omitted
            prefix: Prefix of the variable names

        Returns:
            OpenTsdbConfig: Configuration read from the environment
        """
        environment = {**dotenv_values(dotenv_path or find_dotenv(usecwd=True)), **os.environ}
        values: Dict[str, Any] = {"prefix": prefix}
        for field_name in _PROPERTY_KEYS.values():
            value = environment.get(f"{prefix.upper()}_{field_name.upper()}")
            if value is not None:
                values[field_name] = value
        return cls(**values)

    def property_name(self, key: str) -> str:
        """Full property name of a configuration key, used in error messages."""
        return f"{self.prefix}.{key}"
