"""Background forecast worker.

Forecasts run on a dedicated thread and communicate only by messages:
requests are deep-copied into an inbox queue and responses are
deep-copied out of an outbox queue, so neither side shares mutable
state with the other.
"""

import copy
import itertools
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any

from trade_macro_dashboard.data.errors import ClassifiedError
from trade_macro_dashboard.indicators.forecast import (
    MODEL_LABEL,
    ForecastParams,
    run_forecast,
)
from trade_macro_dashboard.indicators.regression import fit_regression


logger = logging.getLogger(__name__)

_STOP = object()


@dataclass
class WorkerRequest:
    """``kind`` is "forecast" or "regression"."""
    kind: str
    payload: dict[str, Any]
    request_id: int = 0


@dataclass
class WorkerResponse:
    request_id: int
    kind: str  # result | regression_result | error
    result: Any = None
    error: ClassifiedError | None = None
    message: str = ""
    label: str = MODEL_LABEL
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.kind != "error"


def handle_request(request: WorkerRequest) -> WorkerResponse:
    """Run one request to completion; failures become error responses."""
    try:
        if request.kind == "forecast":
            params = request.payload.get("params") or ForecastParams()
            if isinstance(params, dict):
                params = ForecastParams(**params)
            result = run_forecast(
                request.payload["values"], params, request.payload.get("exog")
            )
            return WorkerResponse(request.request_id, "result", result=result)
        if request.kind == "regression":
            fit = fit_regression(
                request.payload["X"], request.payload["y"], request.payload.get("labels")
            )
            return WorkerResponse(request.request_id, "regression_result", result=fit)
        return WorkerResponse(
            request.request_id, "error", message=f"Unknown request kind: {request.kind}"
        )
    except ClassifiedError as e:
        return WorkerResponse(request.request_id, "error", error=e, message=e.message)
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Forecast request {request.request_id} failed: {e}")
        return WorkerResponse(request.request_id, "error", message=str(e))
    except Exception as e:
        # The worker thread must outlive any single request
        logger.exception(f"Forecast request {request.request_id} crashed")
        return WorkerResponse(
            request.request_id, "error", message=f"{type(e).__name__}: {e}"
        )


class ForecastWorker:
    """
    Thread that processes forecast and regression requests in order.

    Usage:
        with ForecastWorker() as worker:
            rid = worker.submit("forecast", {"values": series})
            response = worker.receive(rid, timeout=5)
    """

    def __init__(self) -> None:
        self._inbox: queue.Queue = queue.Queue()
        self._outbox: queue.Queue = queue.Queue()
        self._ids = itertools.count(1)
        self._last_id = 0
        self._in_flight: set[int] = set()  # submitted, response not yet collected
        self._abandoned: set[int] = set()
        self._pending: dict[int, WorkerResponse] = {}
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "ForecastWorker":
        if not self.running:
            self._thread = threading.Thread(
                target=self._run, name="forecast-worker", daemon=True
            )
            self._thread.start()
        return self

    def stop(self, timeout: float | None = 5.0) -> None:
        """Finish queued work, then stop the thread."""
        if self._thread is None:
            return
        self._inbox.put(_STOP)
        self._thread.join(timeout)
        self._thread = None

    def __enter__(self) -> "ForecastWorker":
        return self.start()

    def __exit__(self, *args) -> None:
        self.stop()

    def submit(self, kind: str, payload: dict[str, Any]) -> int:
        """Queue a request and return its id."""
        if not self.running:
            self.start()
        with self._lock:
            request_id = next(self._ids)
            self._last_id = request_id
            self._in_flight.add(request_id)
        self._inbox.put(WorkerRequest(kind, copy.deepcopy(payload), request_id))
        return request_id

    def abandon(self, request_id: int) -> None:
        """Drop the response for ``request_id`` when it arrives; the work still runs."""
        with self._lock:
            self._pending.pop(request_id, None)
            if request_id in self._in_flight:
                self._abandoned.add(request_id)

    def receive(self, request_id: int, timeout: float | None = None) -> WorkerResponse:
        """
        Block until the response for ``request_id`` arrives.

        Raises:
            queue.Empty: Nothing arrived within ``timeout``
            KeyError: The request was abandoned or its response already collected
        """
        while True:
            with self._lock:
                if request_id in self._pending:
                    return self._pending.pop(request_id)
                if request_id in self._abandoned or (
                    request_id <= self._last_id and request_id not in self._in_flight
                ):
                    raise KeyError(f"Request {request_id} was abandoned or already received")
            response = self._outbox.get(timeout=timeout)
            with self._lock:
                self._in_flight.discard(response.request_id)
                if response.request_id in self._abandoned:
                    self._abandoned.discard(response.request_id)
                    logger.debug(f"Dropped abandoned response {response.request_id}")
                    continue
                self._pending[response.request_id] = copy.deepcopy(response)

    def _run(self) -> None:
        while True:
            request = self._inbox.get()
            if request is _STOP:
                break
            self._outbox.put(copy.deepcopy(handle_request(request)))
