import json

import httpx
import pytest

from trade_macro_dashboard.config import Settings
from trade_macro_dashboard.data.cache import CacheStore
from trade_macro_dashboard.data.executor import RequestExecutor
from trade_macro_dashboard.data.telemetry import EventLog


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        cache_dir=tmp_path,
        max_retries=3,
        retry_base_ms=1000,
        request_timeout=5,
        comtrade_enabled=False,
        comtrade_api_key="",
        live_refresh=True,
        forecast_enabled=True,
        snapshot_fallback=True,
    )


class Recorder:
    """Counts requests and records sleeps for an executor under test."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.sleeps: list[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


@pytest.fixture
def make_executor(settings):
    """Build an executor whose network is a handler function."""
    executors = []

    def build(handler, online: bool = True, persistent: bool = False, **kwargs):
        recorder = Recorder()

        def recording_handler(request: httpx.Request) -> httpx.Response:
            recorder.requests.append(request)
            return handler(request)

        events = EventLog()
        executor = RequestExecutor(
            cache=CacheStore(settings.db_path if persistent else None, events=events),
            events=events,
            settings=settings,
            client=httpx.Client(transport=httpx.MockTransport(recording_handler)),
            sleep=recorder.sleep,
            is_online=lambda: online,
            **kwargs,
        )
        executors.append(executor)
        return executor, recorder

    yield build
    for executor in executors:
        executor.close()


def json_response(payload, status: int = 200, **kwargs) -> httpx.Response:
    return httpx.Response(status, content=json.dumps(payload).encode(), **kwargs)
