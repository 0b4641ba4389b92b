import threading
import time
from concurrent.futures import CancelledError

import httpx
import pytest

from conftest import json_response
from trade_macro_dashboard.data.cache import CacheStore
from trade_macro_dashboard.data.errors import ClassifiedError, ErrorKind
from trade_macro_dashboard.data.executor import RequestDescriptor, RequestExecutor, ResponseFormat
from trade_macro_dashboard.data.telemetry import EventLog


URL = "https://api.example.org/data?x=1"


def sequence_handler(statuses, payload=None):
    remaining = list(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        status = remaining.pop(0)
        if status == 200:
            return json_response(payload if payload is not None else {"ok": True})
        return httpx.Response(status, content=b"{}")

    return handler


def test_rate_limits_are_retried_with_backoff(make_executor) -> None:
    executor, rec = make_executor(sequence_handler([429, 429, 200], {"value": 7}))

    assert executor.execute(RequestDescriptor(URL)) == {"value": 7}
    assert len(rec.requests) == 3
    assert len(rec.sleeps) == 2
    # base 1s * 2**attempt plus up to 0.5s jitter
    assert 1.0 <= rec.sleeps[0] <= 1.5
    assert 2.0 <= rec.sleeps[1] <= 2.5


def test_retry_after_header_sets_the_delay(make_executor) -> None:
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429, headers={"Retry-After": "4"})
        return json_response([1, 2])

    executor, rec = make_executor(handler)

    assert executor.execute(RequestDescriptor(URL)) == [1, 2]
    assert rec.sleeps == [4.0]


def test_server_errors_exhaust_retries(make_executor) -> None:
    executor, rec = make_executor(sequence_handler([500] * 4))

    with pytest.raises(ClassifiedError) as excinfo:
        executor.execute(RequestDescriptor(URL))

    assert excinfo.value.kind is ErrorKind.SERVER_ERROR
    assert excinfo.value.retryable
    assert len(rec.requests) == 4
    # no sleep after the final attempt
    assert len(rec.sleeps) == 3


def test_client_error_is_not_retried(make_executor) -> None:
    executor, rec = make_executor(sequence_handler([404]))

    with pytest.raises(ClassifiedError) as excinfo:
        executor.execute(RequestDescriptor(URL))

    assert excinfo.value.kind is ErrorKind.CLIENT_ERROR
    assert not excinfo.value.recoverable
    assert len(rec.requests) == 1
    assert rec.sleeps == []


def test_transport_failure_while_online_is_cors_blocked(make_executor) -> None:
    def handler(request):
        raise httpx.ConnectError("blocked", request=request)

    executor, rec = make_executor(handler, online=True)

    with pytest.raises(ClassifiedError) as excinfo:
        executor.execute(RequestDescriptor(URL))

    assert excinfo.value.kind is ErrorKind.CORS_BLOCKED
    assert excinfo.value.source == "api.example.org"
    assert len(rec.requests) == 1


def test_transport_failure_while_offline_aborts(make_executor) -> None:
    def handler(request):
        raise httpx.ConnectError("no route", request=request)

    executor, rec = make_executor(handler, online=False)

    with pytest.raises(ClassifiedError) as excinfo:
        executor.execute(RequestDescriptor(URL))

    assert excinfo.value.kind is ErrorKind.NETWORK
    assert excinfo.value.message == "Offline"
    assert len(rec.requests) == 1
    assert rec.sleeps == []


def test_timeouts_are_retried(make_executor) -> None:
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            raise httpx.ReadTimeout("slow", request=request)
        return json_response({"late": True})

    executor, rec = make_executor(handler)

    assert executor.execute(RequestDescriptor(URL)) == {"late": True}
    assert len(rec.sleeps) == 2


def test_oversized_payload_is_rejected(make_executor) -> None:
    executor, _ = make_executor(
        lambda request: json_response({"blob": "x" * 200}), max_payload_bytes=100
    )

    with pytest.raises(ClassifiedError) as excinfo:
        executor.execute(RequestDescriptor(URL))

    assert excinfo.value.kind is ErrorKind.PAYLOAD_TOO_LARGE
    assert not excinfo.value.retryable


def test_undecodable_body_is_schema_drift(make_executor) -> None:
    executor, rec = make_executor(lambda request: httpx.Response(200, content=b"<html>"))

    with pytest.raises(ClassifiedError) as excinfo:
        executor.execute(RequestDescriptor(URL))

    assert excinfo.value.kind is ErrorKind.SCHEMA_DRIFT
    assert len(rec.requests) == 1


def test_xml_and_text_formats(make_executor) -> None:
    body = b"<Structure><Dataflow id='DF_WITS_TradeStats_Trade'/></Structure>"
    executor, _ = make_executor(lambda request: httpx.Response(200, content=body))

    root = executor.execute(RequestDescriptor(URL, ResponseFormat.XML))
    text = executor.execute(RequestDescriptor(URL + "&t=1", ResponseFormat.TEXT))

    assert root.tag == "Structure"
    assert root[0].get("id") == "DF_WITS_TradeStats_Trade"
    assert text.startswith("<Structure>")


def test_identical_requests_hit_the_cache(make_executor) -> None:
    executor, rec = make_executor(lambda request: json_response({"n": 1}))
    descriptor = RequestDescriptor(URL, cache_ttl=600)

    first = executor.execute(descriptor)
    second = executor.execute(RequestDescriptor(URL, cache_ttl=600))

    assert first == second == {"n": 1}
    assert len(rec.requests) == 1
    assert executor.events.summarise()["cache_hits"] == 1


def test_cancelled_before_first_attempt(make_executor) -> None:
    executor, rec = make_executor(lambda request: json_response({}))
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(CancelledError):
        executor.execute(RequestDescriptor(URL), cancel=cancel)

    assert rec.requests == []


def test_cancel_stops_further_retries(make_executor) -> None:
    cancel = threading.Event()

    def handler(request):
        cancel.set()
        return httpx.Response(503)

    executor, rec = make_executor(handler)

    with pytest.raises(CancelledError):
        executor.execute(RequestDescriptor(URL), cancel=cancel)

    assert len(rec.requests) == 1


def test_backoff_grows_exponentially(make_executor) -> None:
    executor, _ = make_executor(lambda request: json_response({}))

    for attempt in range(4):
        delay = executor.backoff(attempt)
        assert 2 ** attempt <= delay <= 2 ** attempt + 0.5


def test_injected_event_log_is_shared_with_the_cache(settings) -> None:
    events = EventLog()
    cache = CacheStore(events=events)

    executor = RequestExecutor(cache=cache, events=events, settings=settings)

    assert executor.events is events
    assert executor.cache is cache
    assert cache.events is events


def test_default_ttl_comes_from_settings(settings) -> None:
    settings.cache_ttl_seconds = 120
    now = {"t": 1000.0}
    calls = []

    def handler(request):
        calls.append(request)
        return json_response({"n": len(calls)})

    executor = RequestExecutor(
        cache=CacheStore(clock=lambda: now["t"]),
        settings=settings,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=lambda seconds: None,
    )

    assert executor.execute(RequestDescriptor(URL)) == {"n": 1}
    now["t"] += 119
    assert executor.execute(RequestDescriptor(URL)) == {"n": 1}
    now["t"] += 2
    assert executor.execute(RequestDescriptor(URL)) == {"n": 2}
    executor.close()


def test_streamed_payload_without_length_is_capped(make_executor) -> None:
    def handler(request):
        return httpx.Response(200, content=iter([b"[1,2,", b"3,4,5,", b"6]"]))

    executor, _ = make_executor(handler, max_payload_bytes=8)

    with pytest.raises(ClassifiedError) as excinfo:
        executor.execute(RequestDescriptor(URL))

    assert excinfo.value.kind is ErrorKind.PAYLOAD_TOO_LARGE
    assert excinfo.value.details == {"bytes": 11, "limit": 8}


def test_streamed_payload_under_the_cap_decodes(make_executor) -> None:
    executor, _ = make_executor(
        lambda request: httpx.Response(200, content=iter([b"[1,", b"2]"])),
        max_payload_bytes=8,
    )

    assert executor.execute(RequestDescriptor(URL)) == [1, 2]


def test_cancel_interrupts_the_backoff_wait(settings) -> None:
    settings.retry_base_ms = 60_000
    cancel = threading.Event()
    calls = []

    def handler(request):
        calls.append(request)
        cancel.set()
        return httpx.Response(503)

    executor = RequestExecutor(
        settings=settings,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    started = time.monotonic()
    with pytest.raises(CancelledError):
        executor.execute(RequestDescriptor(URL), cancel=cancel)

    assert time.monotonic() - started < 5
    assert len(calls) == 1
    executor.close()


def test_offline_error_names_the_host(make_executor) -> None:
    def handler(request):
        raise httpx.ConnectError("no route", request=request)

    executor, _ = make_executor(handler, online=False)

    with pytest.raises(ClassifiedError) as excinfo:
        executor.execute(RequestDescriptor(URL))

    assert excinfo.value.source == "api.example.org"


def test_subscription_key_is_redacted_from_errors_and_events(make_executor) -> None:
    executor, _ = make_executor(lambda request: httpx.Response(401))
    url = "https://comtradeapi.un.org/data/v1/get/C/A/HS?period=2022&subscription-key=top-secret"

    with pytest.raises(ClassifiedError) as excinfo:
        executor.execute(RequestDescriptor(url))

    assert "top-secret" not in excinfo.value.message
    assert "subscription-key=***" in excinfo.value.details["url"]
    assert all("top-secret" not in str(e) for e in executor.events.events())
