"""Initialization file for the publishing pipeline."""
from opentsdb_publisher.core.pipeline.converter import MeterConverter
from opentsdb_publisher.core.pipeline.partition import partition
from opentsdb_publisher.core.pipeline.publisher import OpenTsdbPublisher, basic_auth_requester

__all__ = ["MeterConverter", "OpenTsdbPublisher", "basic_auth_requester", "partition"]
