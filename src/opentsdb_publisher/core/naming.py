"""Naming conventions mapping meter and tag names to backend safe identifiers."""
from abc import ABC, abstractmethod
from typing import Optional

from opentsdb_publisher.core.models.meters import MeterType

# OpenTSDB rejects these characters in metric names, tag keys and tag values
_OPENTSDB_RESERVED = ("=", ",", " ")


class NamingConvention(ABC):
    """Base interface for naming conventions."""

    @abstractmethod
    def name(self, name: str, meter_type: MeterType, base_unit: Optional[str] = None) -> str:
        """
        Map a meter name to the backend's naming scheme.

        Args:
            name: Raw meter name
            meter_type: Kind of the meter the name belongs to
            base_unit: Optional base unit of the meter

        Returns:
            str: Name to put on the wire
        """
        pass

    @abstractmethod
    def tag_key(self, key: str) -> str:
        pass

    @abstractmethod
    def tag_value(self, value: str) -> str:
        pass


class IdentityNamingConvention(NamingConvention):
    """Naming convention that leaves every name untouched."""

    def name(self, name: str, meter_type: MeterType, base_unit: Optional[str] = None) -> str:
        return name

    def tag_key(self, key: str) -> str:
        return key

    def tag_value(self, value: str) -> str:
        return value


class OpenTsdbNamingConvention(NamingConvention):
    """
    Naming convention for OpenTSDB.

    Each reserved character is replaced by a single ``-``. JSON escaping is
    not done here; it is applied separately when a data point is serialized.
    """

    def name(self, name: str, meter_type: MeterType, base_unit: Optional[str] = None) -> str:
        return self._escape(name)

    def tag_key(self, key: str) -> str:
        return self._escape(key)

    def tag_value(self, value: str) -> str:
        return self._escape(value)

    @staticmethod
    def _escape(text: str) -> str:
        for char in _OPENTSDB_RESERVED:
            text = text.replace(char, "-")
        return text
