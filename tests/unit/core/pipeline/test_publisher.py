"""Unit tests for the OpenTSDB publisher."""
import asyncio
import gzip
import json
import logging
import threading
import time
from datetime import timedelta

import pytest
from requests.exceptions import ConnectionError, RequestException
from unittest.mock import MagicMock, patch

from opentsdb_publisher.adapters.registry.memory import InMemoryMeterRegistry
from opentsdb_publisher.core.config import OpenTsdbConfig
from opentsdb_publisher.core.models.meters import Meter, MeterId
from opentsdb_publisher.core.models.results import PublishResult
from opentsdb_publisher.core.pipeline.publisher import OpenTsdbPublisher, basic_auth_requester

PUBLISHER_LOGGER = "opentsdb_publisher.core.pipeline.publisher"


def _response(status_code=200, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


@pytest.fixture
def mock_session():
    """Create a mock for the requests session."""
    with patch("requests.Session") as mock_session_cls:
        session = mock_session_cls.return_value
        session.send.return_value = _response()
        yield {
            "cls": mock_session_cls,
            "session": session,
        }


@pytest.fixture
def registry():
    """Create an in-memory registry with a fixed clock."""
    return InMemoryMeterRegistry(clock=lambda: 1000)


@pytest.fixture
def config():
    """Create an uncompressed configuration."""
    return OpenTsdbConfig(uri="http://localhost:4242", compressed=False, batch_size=2)


@pytest.fixture
def publisher(registry, config):
    """Create a publisher for testing."""
    return OpenTsdbPublisher(registry, config)


def _sent_requests(mock_session):
    return [call[0][0] for call in mock_session["session"].send.call_args_list]


def _add_counters(registry, count):
    for index in range(count):
        registry.counter(f"counter.{index}").increment(index)


def test_publish_single_batch(publisher, registry, mock_session):
    """Test the request sent for one batch."""
    # Arrange
    registry.counter("logins", tags={"host": "web 1"}).increment(3)

    # Act
    result = publisher.publish()

    # Assert
    requests_sent = _sent_requests(mock_session)
    assert len(requests_sent) == 1
    request = requests_sent[0]
    assert request.method == "POST"
    assert request.url == "http://localhost:4242/api/put"
    assert request.headers["Content-Type"] == "application/json"
    assert "Content-Encoding" not in request.headers
    assert request.body == b'[{"metric":"logins","timestamp":1000,"value":"3.0","tags":{"host":"web-1"}}]'
    assert mock_session["session"].send.call_args.kwargs["timeout"] == (1.0, 10.0)
    assert result.batch_count == 1
    assert result.success_count == 1
    assert result.meter_count == 1
    assert result.failure_count == 0


def test_publish_compressed(registry, mock_session):
    """Test that compressed batches are gzip encoded."""
    # Arrange
    registry.gauge("temperature", lambda: 21.5)
    publisher = OpenTsdbPublisher(registry, OpenTsdbConfig(uri="http://localhost:4242"))

    # Act
    publisher.publish()

    # Assert
    request = _sent_requests(mock_session)[0]
    assert request.headers["Content-Encoding"] == "gzip"
    payload = json.loads(gzip.decompress(request.body).decode("utf-8"))
    assert payload == [{"metric": "temperature", "timestamp": 1000, "value": "21.5", "tags": {}}]


def test_publish_splits_meters_into_batches(publisher, registry, mock_session):
    """Test that each batch is sent in its own request."""
    # Arrange
    _add_counters(registry, 5)

    # Act
    result = publisher.publish()

    # Assert
    requests_sent = _sent_requests(mock_session)
    assert len(requests_sent) == 3
    metrics = [[point["metric"] for point in json.loads(request.body)] for request in requests_sent]
    assert metrics == [["counter.0", "counter.1"], ["counter.2", "counter.3"], ["counter.4"]]
    assert mock_session["cls"].call_count == 3
    assert mock_session["session"].close.call_count == 3
    assert result.batch_count == 3
    assert result.success_count == 3
    assert result.meter_count == 5


def test_publish_empty_registry(publisher, mock_session):
    """Test that nothing is sent without meters."""
    result = publisher.publish()

    mock_session["session"].send.assert_not_called()
    assert result.batch_count == 0


def test_failed_batch_does_not_stop_later_batches(publisher, registry, mock_session, caplog):
    """Test that a transport error only abandons its own batch."""
    # Arrange
    _add_counters(registry, 5)
    mock_session["session"].send.side_effect = [
        ConnectionError("Connection refused"),
        _response(),
        _response(),
    ]

    # Act
    with caplog.at_level(logging.ERROR, logger=PUBLISHER_LOGGER):
        result = publisher.publish()

    # Assert
    assert mock_session["session"].send.call_count == 3
    assert result.success_count == 2
    assert result.failure_count == 1
    assert result.failures[0]["batch"] == 1
    assert "Connection refused" in result.failures[0]["errors"][0]
    assert "Connection refused" in caplog.text
    assert mock_session["session"].close.call_count == 3


def test_error_status_logs_body(publisher, registry, mock_session, caplog):
    """Test that a 4xx/5xx response is logged with its body without raising."""
    # Arrange
    _add_counters(registry, 3)
    mock_session["session"].send.side_effect = [
        _response(400, '{"error":{"message":"Unknown metric"}}'),
        _response(204),
    ]

    # Act
    with caplog.at_level(logging.ERROR, logger=PUBLISHER_LOGGER):
        result = publisher.publish()

    # Assert
    assert "Failed to send metrics: {\"error\":{\"message\":\"Unknown metric\"}}" in caplog.text
    assert result.success_count == 1
    assert result.failure_count == 1
    assert result.failures == [{"batch": 1, "size": 2}]


def test_unexpected_status_logs_status_code(publisher, registry, mock_session, caplog):
    """Test that a status that is neither success nor error is logged generically."""
    # Arrange
    registry.counter("c").increment()
    mock_session["session"].send.return_value = _response(302)

    # Act
    with caplog.at_level(logging.ERROR, logger=PUBLISHER_LOGGER):
        result = publisher.publish()

    # Assert
    assert "Failed to send metrics: http 302" in caplog.text
    assert result.failure_count == 1


def test_success_is_logged_at_debug(publisher, registry, mock_session, caplog):
    """Test the debug log of an accepted batch."""
    _add_counters(registry, 2)

    with caplog.at_level(logging.DEBUG, logger=PUBLISHER_LOGGER):
        publisher.publish()

    assert "Successfully sent 2 metrics to OpenTSDB" in caplog.text


@pytest.mark.parametrize("uri", [
    "not a uri",
    "localhost:4242",
    "ftp://localhost:4242",
    "",
    "http://localhost:notaport",
    "http://localhost:99999",
    "http://exa mple.com",
])
def test_malformed_uri_raises_before_sending(registry, mock_session, uri):
    """Test that a malformed endpoint is fatal and nothing is sent."""
    # Arrange
    _add_counters(registry, 3)
    publisher = OpenTsdbPublisher(registry, OpenTsdbConfig(uri=uri))

    # Act & Assert
    with pytest.raises(ValueError, match="opentsdb.uri"):
        publisher.publish()
    mock_session["cls"].assert_not_called()


@pytest.mark.parametrize("uri", ["https://tsdb.example.com", "http://[::1]:4242", "http://10.0.0.7:4242/tsdb"])
def test_valid_uri_is_accepted(registry, mock_session, uri):
    """Test that ordinary endpoints pass validation."""
    _add_counters(registry, 1)
    publisher = OpenTsdbPublisher(registry, OpenTsdbConfig(uri=uri))

    result = publisher.publish()

    assert result.success_count == 1
    assert _sent_requests(mock_session)[0].url.endswith("/api/put")


def test_registry_failure_is_logged_not_raised(config, mock_session, caplog):
    """Test that an error outside the batches ends the publish quietly."""
    # Arrange
    registry = MagicMock()
    registry.get_meters.side_effect = RuntimeError("registry closed")
    publisher = OpenTsdbPublisher(registry, config)

    # Act
    with caplog.at_level(logging.ERROR, logger=PUBLISHER_LOGGER):
        result = publisher.publish()

    # Assert
    assert result.batch_count == 0
    assert "registry closed" in caplog.text
    mock_session["session"].send.assert_not_called()


def test_meter_failure_abandons_only_its_batch(publisher, registry, mock_session):
    """Test that an error reading a meter fails only the batch holding it."""
    # Arrange
    broken = MagicMock(spec=Meter)
    broken.id = MeterId(name="broken")
    broken.measure.side_effect = RuntimeError("statistic unavailable")
    registry.register(broken)
    _add_counters(registry, 3)

    # Act
    result = publisher.publish()

    # Assert
    assert mock_session["session"].send.call_count == 1
    assert result.batch_count == 2
    assert result.failure_count == 1
    assert "statistic unavailable" in result.failures[0]["errors"][0]
    assert mock_session["session"].close.call_count == 2


def test_close_errors_are_suppressed(publisher, registry, mock_session):
    """Test that failing to close a connection does not fail the batch."""
    registry.counter("c").increment()
    mock_session["session"].close.side_effect = RequestException("already closed")

    result = publisher.publish()

    assert result.success_count == 1


def test_authentication_hook(registry, mock_session):
    """Test that the hook authenticates requests when credentials are configured."""
    # Arrange
    registry.counter("c").increment()
    config = OpenTsdbConfig(uri="http://localhost:4242", user_name="user", password="pass")
    publisher = OpenTsdbPublisher(registry, config, authenticate_requester=basic_auth_requester)

    # Act
    publisher.publish()

    # Assert
    request = _sent_requests(mock_session)[0]
    assert request.headers["Authorization"] == "Basic dXNlcjpwYXNz"


def test_authentication_hook_receives_request_and_config(registry, mock_session):
    """Test the arguments passed to the hook."""
    # Arrange
    registry.counter("c").increment()
    config = OpenTsdbConfig(uri="http://localhost:4242", user_name="user", password="pass")
    hook = MagicMock(side_effect=lambda request, cfg: request.headers.update({"X-Token": "abc"}))
    publisher = OpenTsdbPublisher(registry, config)
    publisher.set_authenticate_requester(hook)

    # Act
    publisher.publish()

    # Assert
    hook.assert_called_once()
    assert hook.call_args[0][1] is config
    assert _sent_requests(mock_session)[0].headers["X-Token"] == "abc"


@pytest.mark.parametrize("user_name, password", [("user", None), (None, "pass"), (None, None)])
def test_authentication_hook_needs_both_credentials(registry, mock_session, user_name, password):
    """Test that the hook is skipped unless both credentials are set."""
    # Arrange
    registry.counter("c").increment()
    config = OpenTsdbConfig(uri="http://localhost:4242", user_name=user_name, password=password)
    hook = MagicMock()
    publisher = OpenTsdbPublisher(registry, config, authenticate_requester=hook)

    # Act
    publisher.publish()

    # Assert
    hook.assert_not_called()
    assert "Authorization" not in _sent_requests(mock_session)[0].headers


def test_render_batch_skips_meters_without_data_points(publisher, registry):
    """Test rendering a batch holding only a NaN gauge."""
    gauge = registry.gauge("ratio", lambda: float("nan"))

    assert publisher.render_batch([gauge]) == "[]"


@pytest.mark.asyncio
async def test_start_publishes_every_step_and_on_stop(registry, config):
    """Test the background publishing loop."""
    # Arrange
    publisher = OpenTsdbPublisher(registry, config)
    publisher.publish = MagicMock(return_value=PublishResult())

    # Act
    with patch(
        "opentsdb_publisher.core.pipeline.publisher.seconds_until_next_step",
        return_value=0.01
    ):
        await publisher.start()
        await asyncio.sleep(0.1)
        calls_while_running = publisher.publish.call_count
        await publisher.stop()

    # Assert
    assert calls_while_running >= 1
    assert publisher.publish.call_count >= calls_while_running + 1
    assert publisher.running is False
    assert publisher.task is None


@pytest.mark.asyncio
async def test_start_is_idempotent(registry, config):
    """Test that starting twice keeps a single background task."""
    publisher = OpenTsdbPublisher(registry, config)
    publisher.publish = MagicMock(return_value=PublishResult())

    await publisher.start()
    task = publisher.task
    await publisher.start()

    assert publisher.task is task
    await publisher.stop()


@pytest.mark.asyncio
async def test_disabled_publisher_does_not_start(registry):
    """Test that a disabled configuration never schedules publishes."""
    publisher = OpenTsdbPublisher(registry, OpenTsdbConfig(enabled=False))
    publisher.publish = MagicMock(return_value=PublishResult())

    await publisher.start()
    await publisher.stop()

    assert publisher.task is None
    publisher.publish.assert_not_called()


@pytest.mark.asyncio
async def test_stop_logs_malformed_uri(registry, caplog):
    """Test that the scheduler logs a malformed endpoint instead of raising."""
    publisher = OpenTsdbPublisher(registry, OpenTsdbConfig(uri="nope", step=timedelta(hours=1)))

    with caplog.at_level(logging.ERROR, logger=PUBLISHER_LOGGER):
        await publisher.start()
        await publisher.stop()

    assert "Malformed OpenTSDB publishing endpoint" in caplog.text


@pytest.mark.asyncio
async def test_stop_reports_failure_of_interrupted_publish(registry, config, caplog):
    """Test that stop collects the error of a publish running during cancellation."""
    # Arrange
    publisher = OpenTsdbPublisher(registry, config)
    started = threading.Event()

    def failing_publish():
        started.set()
        time.sleep(0.2)
        raise ValueError("Malformed OpenTSDB publishing endpoint, see 'opentsdb.uri'")

    publisher.publish = MagicMock(side_effect=failing_publish)

    # Act
    with caplog.at_level(logging.ERROR, logger=PUBLISHER_LOGGER):
        with patch(
            "opentsdb_publisher.core.pipeline.publisher.seconds_until_next_step",
            return_value=0
        ):
            await publisher.start()
            await asyncio.to_thread(started.wait, 5)
            await publisher.stop()

    # Assert
    failures = [record for record in caplog.records if "Unable to publish metrics" in record.message]
    assert publisher.publish.call_count >= 2
    assert len(failures) == publisher.publish.call_count
    assert publisher.task is None
