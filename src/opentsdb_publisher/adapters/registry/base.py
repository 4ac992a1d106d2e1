"""Base interfaces for meter registries."""
from abc import ABC, abstractmethod
from typing import List

from opentsdb_publisher.core.models.meters import Meter


class MeterRegistry(ABC):
    """Source of the meters exported on every publish."""

    @abstractmethod
    def get_meters(self) -> List[Meter]:
        """
        Get a snapshot of all registered meters.

        The snapshot must be safe to iterate while instrumented code keeps
        registering and updating meters from other threads.

        Returns:
            List[Meter]: Registered meters in registration order
        """
        pass

    @abstractmethod
    def wall_time(self) -> int:
        """
        Current wall clock time.

        Returns:
            int: Epoch milliseconds
        """
        pass
