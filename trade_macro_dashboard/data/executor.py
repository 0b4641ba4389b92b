"""HTTP request executor with caching, retry/backoff and error classification."""

import json
import logging
import random
import socket
import threading
import time
import xml.etree.ElementTree as ET
from concurrent.futures import CancelledError
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable
from urllib.parse import urlsplit

import httpx

from trade_macro_dashboard.config import Settings, redact_url
from trade_macro_dashboard.data.cache import CacheStore, MISSING, fingerprint
from trade_macro_dashboard.data.errors import ClassifiedError, ErrorKind
from trade_macro_dashboard.data.telemetry import EventLog


logger = logging.getLogger(__name__)

MAX_PAYLOAD_BYTES = 10 * 1024 * 1024  # 10 MiB


class ResponseFormat(Enum):
    """How a successful response body is decoded."""
    JSON = "json"
    XML = "xml"
    TEXT = "text"


@dataclass(frozen=True)
class RequestDescriptor:
    """One logical fetch."""

    url: str
    response_format: ResponseFormat = ResponseFormat.JSON
    cache_ttl: float | None = None  # seconds; None = settings.cache_ttl_seconds
    max_retries: int | None = None  # None = executor default
    params: dict | None = None
    cache_key: str | None = None

    @property
    def key(self) -> str:
        return self.cache_key or fingerprint(self.url, self.params)


def check_connectivity(host: str = "1.1.1.1", port: int = 53, timeout: float = 1.0) -> bool:
    """Best-effort connectivity check used to tell "offline" from "blocked"."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class RequestExecutor:
    """
    Performs fetches against the public statistics APIs.

    A live cache entry short-circuits the network entirely. Otherwise the
    request is attempted up to ``max_retries + 1`` times; only rate limits,
    5xx responses and timeouts are retried.
    """

    BASE_DELAY_MS = 1000
    JITTER_MS = 500

    def __init__(
        self,
        cache: CacheStore | None = None,
        events: EventLog | None = None,
        settings: Settings | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] | None = None,
        is_online: Callable[[], bool] = check_connectivity,
        max_payload_bytes: int = MAX_PAYLOAD_BYTES,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.events = events if events is not None else EventLog()
        self.cache = cache if cache is not None else CacheStore(events=self.events)
        self.max_retries = self.settings.max_retries
        self.base_delay_ms = self.settings.retry_base_ms
        self.timeout = self.settings.request_timeout
        self.default_ttl = self.settings.cache_ttl_seconds
        self.max_payload_bytes = max_payload_bytes
        self._client = client
        self._sleep = sleep
        self._is_online = is_online

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._client

    def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "RequestExecutor":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def execute(
        self, descriptor: RequestDescriptor, cancel: threading.Event | None = None
    ) -> Any:
        """
        Fetch one descriptor, from cache when possible.

        Args:
            descriptor: What to fetch and how to decode it
            cancel: When set, no further attempts are started and any
                backoff wait ends early

        Returns:
            Decoded payload (dict/list, ElementTree element, or str)

        Raises:
            ClassifiedError: Terminal failure, or retries exhausted
            CancelledError: ``cancel`` was set before an attempt or during backoff
        """
        key = descriptor.key
        cached = self.cache.get(key)
        if cached is not MISSING:
            return cached

        max_retries = (
            self.max_retries if descriptor.max_retries is None else descriptor.max_retries
        )
        ttl = self.default_ttl if descriptor.cache_ttl is None else descriptor.cache_ttl
        url = redact_url(descriptor.url)
        host = urlsplit(descriptor.url).hostname or url
        last_error: ClassifiedError | None = None

        for attempt in range(max_retries + 1):
            if cancel is not None and cancel.is_set():
                self.events.track("fetch", "cancelled", url=url, attempt=attempt)
                raise CancelledError(f"Fetch cancelled: {url}")

            self.events.track("fetch", "attempt", url=url, attempt=attempt)
            try:
                payload = self._attempt(descriptor, host)
            except ClassifiedError as err:
                self.events.track_error(err)
                if not err.retryable or err.details.get("offline"):
                    raise
                last_error = err
                if attempt < max_retries:
                    delay = self._retry_delay(err, attempt)
                    logger.info(
                        f"Retrying {url} in {delay:.2f}s "
                        f"(attempt {attempt + 1}/{max_retries})"
                    )
                    self._wait(delay, cancel)
                continue

            self.cache.set(key, payload, ttl)
            self.events.track("fetch", "success", url=url, attempt=attempt)
            return payload

        self.events.track("fetch", "exhausted", url=url)
        raise last_error

    def _wait(self, delay: float, cancel: threading.Event | None) -> None:
        """Backoff pause; a set ``cancel`` ends it and aborts the fetch."""
        if self._sleep is not None:
            self._sleep(delay)
        elif cancel is not None:
            cancel.wait(delay)
        else:
            time.sleep(delay)
        if cancel is not None and cancel.is_set():
            raise CancelledError("Fetch cancelled during backoff")

    def backoff(self, attempt: int) -> float:
        """Exponential backoff with jitter, in seconds."""
        delay_ms = self.base_delay_ms * (2 ** attempt) + random.uniform(0, self.JITTER_MS)
        return delay_ms / 1000.0

    def _retry_delay(self, err: ClassifiedError, attempt: int) -> float:
        retry_after = err.details.get("retry_after")
        if err.kind is ErrorKind.RATE_LIMIT and retry_after:
            return float(retry_after)
        return self.backoff(attempt)

    def _attempt(self, descriptor: RequestDescriptor, host: str) -> Any:
        """One network attempt; raises ClassifiedError on any failure."""
        started = time.perf_counter()
        try:
            with self.client.stream(
                "GET", descriptor.url, params=descriptor.params, timeout=self.timeout
            ) as response:
                elapsed_ms = round((time.perf_counter() - started) * 1000)
                status = response.status_code
                self.events.track(
                    "fetch",
                    "response",
                    url=redact_url(descriptor.url),
                    status=status,
                    ms=elapsed_ms,
                )

                if status == 429:
                    raise ClassifiedError.rate_limit(
                        host, _parse_retry_after(response.headers.get("Retry-After"))
                    )
                if status >= 500:
                    raise ClassifiedError.server_error(host, status)
                if status >= 400:
                    raise ClassifiedError.client_error(host, status, redact_url(descriptor.url))

                declared = response.headers.get("Content-Length")
                if declared and declared.isdigit() and int(declared) > self.max_payload_bytes:
                    raise self._too_large(host, int(declared))
                body = self._read_capped(response, host)
                encoding = response.encoding or "utf-8"
        except httpx.TimeoutException as exc:
            raise ClassifiedError(
                ErrorKind.NETWORK,
                f"Request to {host} timed out after {self.timeout}s",
                host,
                {"timeout": self.timeout},
            ) from exc
        except httpx.TransportError as exc:
            if self._is_online():
                raise ClassifiedError(
                    ErrorKind.CORS_BLOCKED,
                    f"CORS blocked for {host}",
                    host,
                    {"reason": str(exc)},
                ) from exc
            raise ClassifiedError(
                ErrorKind.NETWORK, "Offline", host, {"offline": True}
            ) from exc

        return self._decode(body, encoding, descriptor, host)

    def _read_capped(self, response: httpx.Response, host: str) -> bytes:
        chunks = []
        total = 0
        for chunk in response.iter_bytes():
            total += len(chunk)
            if total > self.max_payload_bytes:
                raise self._too_large(host, total)
            chunks.append(chunk)
        return b"".join(chunks)

    def _too_large(self, host: str, size: int) -> ClassifiedError:
        return ClassifiedError(
            ErrorKind.PAYLOAD_TOO_LARGE,
            f"Payload too large from {host}",
            host,
            {"bytes": size, "limit": self.max_payload_bytes},
        )

    def _decode(
        self, body: bytes, encoding: str, descriptor: RequestDescriptor, host: str
    ) -> Any:
        fmt = descriptor.response_format
        try:
            if fmt is ResponseFormat.JSON:
                return json.loads(body.decode(encoding))
            if fmt is ResponseFormat.XML:
                return ET.fromstring(body)
            return body.decode(encoding, errors="replace")
        except (ValueError, ET.ParseError) as exc:
            raise ClassifiedError(
                ErrorKind.SCHEMA_DRIFT,
                f"Could not decode {fmt.value} response from {host}",
                host,
                {"url": redact_url(descriptor.url), "reason": str(exc)},
            ) from exc


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        # HTTP-date form is not honoured; fall back to backoff
        return None
    return seconds if seconds > 0 else None
