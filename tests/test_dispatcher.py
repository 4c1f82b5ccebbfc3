import httpx
import pytest

from src.config import AlertSeverity, AlertType
from src.core import DispatchException
from src.monitoring.domain import Alert
from src.monitoring.infrastructure import CircuitBreaker, CircuitState, LoggingDispatcher, SlackDispatcher
from tests.helpers import NOW, RecordingDispatcher

WEBHOOK = "https://hooks.slack.test/services/T000/B000/XXXX"


def make_alert():
    return Alert(
        id="alert-1", alert_type=AlertType.LATE_ARRIVAL, severity=AlertSeverity.HIGH,
        message="Representative Dana Whitfield is 12 minutes late for visit at Northwind Traders",
        visit_id="visit-1", representative_id="rep-1", created_at=NOW
    )


def dispatcher_with(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SlackDispatcher(WEBHOOK, backoff_base_seconds=0, http_client=client, **kwargs)


async def test_send_posts_block_kit_message():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, text="ok")

    dispatcher = dispatcher_with(handler, channel="#ops")
    await dispatcher.send(make_alert())
    await dispatcher.close()

    assert len(requests) == 1
    body = requests[0].content.decode()
    assert '"channel":"#ops"' in body.replace(" ", "")
    assert "12 minutes late" in body
    assert "Late Arrival" in body


async def test_send_retries_then_succeeds():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(500)
        return httpx.Response(200)

    dispatcher = dispatcher_with(handler)
    await dispatcher.send(make_alert())
    assert len(attempts) == 3


async def test_send_raises_after_all_attempts_fail():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    dispatcher = dispatcher_with(handler, max_retries=2)
    with pytest.raises(DispatchException):
        await dispatcher.send(make_alert())


async def test_open_circuit_short_circuits_delivery():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
    dispatcher = dispatcher_with(handler, max_retries=1, circuit_breaker=breaker)

    with pytest.raises(DispatchException):
        await dispatcher.send(make_alert())
    assert breaker.state == CircuitState.OPEN

    with pytest.raises(DispatchException):
        await dispatcher.send(make_alert())
    assert len(calls) == 1


def test_circuit_half_opens_after_recovery_timeout():
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=0)
    breaker.record_failure()
    assert breaker.state == CircuitState.CLOSED
    breaker.record_failure()
    assert breaker.state == CircuitState.HALF_OPEN
    assert breaker.allow_request()

    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED


async def test_logging_dispatcher_never_fails():
    dispatcher = LoggingDispatcher()
    await dispatcher.send(make_alert())
    await dispatcher.close()


async def test_dispatcher_without_transport_closes_cleanly():
    dispatcher = RecordingDispatcher()
    assert await dispatcher.close() is None

    await dispatcher.send(make_alert())
    assert len(dispatcher.sent) == 1
