"""Publisher sending registry meters to OpenTSDB over HTTP."""
import asyncio
import gzip
import logging
import re
import time
from typing import Any, Callable, List, Optional
from urllib.parse import urlparse

import requests
from requests.auth import HTTPBasicAuth
from requests.exceptions import RequestException

from opentsdb_publisher.adapters.registry.base import MeterRegistry
from opentsdb_publisher.core.config import OpenTsdbConfig
from opentsdb_publisher.core.models.meters import Meter, TimeUnit
from opentsdb_publisher.core.models.results import PublishResult
from opentsdb_publisher.core.naming import NamingConvention, OpenTsdbNamingConvention
from opentsdb_publisher.core.pipeline.converter import MeterConverter
from opentsdb_publisher.core.pipeline.partition import partition
from opentsdb_publisher.utils.timing import seconds_until_next_step, timed

logger = logging.getLogger(__name__)

WRITE_PATH = "/api/put"

# Host names, IPv4 and unbracketed IPv6 addresses
_HOST_PATTERN = re.compile(r"[\w.:%-]+")

AuthenticateRequester = Callable[[requests.Request, OpenTsdbConfig], None]


def basic_auth_requester(request: requests.Request, config: OpenTsdbConfig) -> None:
    """Authenticate requests with HTTP basic auth using the configured credentials."""
    request.auth = HTTPBasicAuth(config.user_name, config.password)


class OpenTsdbPublisher:
    """
    Publishes the meters of a registry to OpenTSDB.

    Every publish splits the meters into batches and posts each batch as a
    JSON array of data points to ``{uri}/api/put``. A failing batch is logged
    and skipped; the following batches are still sent. Nothing is retried,
    the next publish sends current values again.
    """

    def __init__(
        self,
        registry: MeterRegistry,
        config: Optional[OpenTsdbConfig] = None,
        naming_convention: Optional[NamingConvention] = None,
        authenticate_requester: Optional[AuthenticateRequester] = None
    ):
        """
        Initialize the publisher.

        Args:
            registry: Registry providing the meters to publish
            config: Publisher configuration, defaults are used if omitted
            naming_convention: Convention applied to names, OpenTSDB's by default
            authenticate_requester: Optional hook adding credentials to each request
        """
        self.registry = registry
        self.config = config or OpenTsdbConfig()
        self.naming_convention = naming_convention or OpenTsdbNamingConvention()
        self.authenticate_requester = authenticate_requester
        self.converter = MeterConverter(registry.wall_time, self.base_time_unit)

        self.running = False
        self.task: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Future] = None

    @property
    def base_time_unit(self) -> TimeUnit:
        return TimeUnit.MILLISECONDS

    def set_authenticate_requester(self, authenticate_requester: Optional[AuthenticateRequester]) -> None:
        self.authenticate_requester = authenticate_requester

    @timed
    def publish(self) -> PublishResult:
        """
        Send all meters of the registry to OpenTSDB.

        Returns:
            PublishResult: Outcome of every batch of this publish

        Raises:
            ValueError: If the configured URI does not form a valid endpoint
        """
        endpoint = self._endpoint()
        result = PublishResult()

        try:
            for batch in partition(self.registry.get_meters(), self.config.batch_size):
                result.batch_count += 1
                try:
                    if self._send_batch(endpoint, batch):
                        result.success_count += 1
                        result.meter_count += len(batch)
                    else:
                        result.failure_count += 1
                        result.failures.append({"batch": result.batch_count, "size": len(batch)})
                except Exception as e:
                    logger.error(f"Failed to send metrics: {e}")
                    result.failure_count += 1
                    result.failures.append({
                        "batch": result.batch_count,
                        "size": len(batch),
                        "errors": [str(e)]
                    })
        except Exception as e:
            logger.error(f"Failed to send metrics: {e}")

        return result

    def render_batch(self, batch: List[Meter]) -> str:
        """
        Render the meters of a batch as a JSON array of data points.

        Args:
            batch: Meters to render

        Returns:
            str: JSON array, ``[]`` if no meter yields a data point
        """
        lines = [
            data_point.to_json_string(self.naming_convention)
            for meter in batch
            for data_point in self.converter.convert(meter)
        ]
        return "[" + ",".join(lines) + "]"

    def _endpoint(self) -> str:
        endpoint = self.config.uri + WRITE_PATH
        message = f"Malformed OpenTSDB publishing endpoint, see '{self.config.property_name('uri')}'"
        parsed = urlparse(endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(message)
        try:
            # Reading the port rejects non-numeric and out of range ports
            parsed.port
            requests.Request("POST", endpoint).prepare()
        except (ValueError, RequestException) as e:
            raise ValueError(f"{message}: {e}") from e
        if not parsed.hostname or not _HOST_PATTERN.fullmatch(parsed.hostname):
            raise ValueError(f"{message}: invalid host '{parsed.hostname}'")
        return endpoint

    def _send_batch(self, endpoint: str, batch: List[Meter]) -> bool:
        """
        Post one batch of meters.

        Args:
            endpoint: URL to post to
            batch: Meters of the batch

        Returns:
            bool: True if OpenTSDB accepted the batch, False otherwise
        """
        session = None
        response = None
        try:
            session = requests.Session()
            request = requests.Request("POST", endpoint, headers={"Content-Type": "application/json"})
            self._authenticate_request(request)

            payload = self.render_batch(batch).encode("utf-8")
            if self.config.compressed:
                request.headers["Content-Encoding"] = "gzip"
                payload = gzip.compress(payload)
            request.data = payload

            response = session.send(request.prepare(), timeout=self._timeouts())
            status = response.status_code

            if 200 <= status < 300:
                logger.debug(f"Successfully sent {len(batch)} metrics to OpenTSDB")
                return True
            if status >= 400:
                if logger.isEnabledFor(logging.ERROR):
                    logger.error(f"Failed to send metrics: {response.text}")
            else:
                logger.error(f"Failed to send metrics: http {status}")
            return False
        finally:
            self._quietly_close(session, response)

    def _authenticate_request(self, request: requests.Request) -> None:
        if (
            self.config.user_name is not None
            and self.config.password is not None
            and self.authenticate_requester is not None
        ):
            self.authenticate_requester(request, self.config)

    def _timeouts(self) -> tuple:
        return (self.config.connect_timeout.total_seconds(), self.config.read_timeout.total_seconds())

    @staticmethod
    def _quietly_close(session: Optional[requests.Session], response: Optional[Any]) -> None:
        try:
            if response is not None:
                response.close()
            if session is not None:
                session.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing connection: {e}")

    async def start(self) -> None:
        """Start publishing once per step in the background."""
        if self.running:
            return
        if not self.config.enabled:
            logger.info("OpenTSDB publishing is disabled")
            return

        self.running = True
        self.task = asyncio.create_task(self._background_publisher())
        logger.info(f"Publishing metrics to OpenTSDB every {self.config.step.total_seconds()} seconds")

    async def stop(self) -> None:
        """Stop the background task and publish the remaining values."""
        if not self.running:
            return

        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None

        # Let a publish interrupted by the cancellation finish before the final one
        if self._in_flight is not None and not self._in_flight.done():
            try:
                await self._in_flight
            except ValueError as e:
                logger.error(f"Unable to publish metrics: {e}")
            self._in_flight = None

        await self._publish_safely()
        logger.info("Stopped publishing metrics to OpenTSDB")

    async def _background_publisher(self) -> None:
        """Background task publishing at every step boundary."""
        step = self.config.step.total_seconds()
        while self.running:
            await asyncio.sleep(seconds_until_next_step(step, time.time()))
            await self._publish_safely()

    async def _publish_safely(self) -> Optional[PublishResult]:
        """Publish on a worker thread, logging a malformed endpoint instead of raising."""
        self._in_flight = asyncio.ensure_future(asyncio.to_thread(self.publish))
        try:
            return await asyncio.shield(self._in_flight)
        except ValueError as e:
            logger.error(f"Unable to publish metrics: {e}")
            return None
