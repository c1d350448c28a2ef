"""HTTP client with bounded retries, timeouts, and request spacing."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Callable

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from bridge_etl.common.constants import USER_AGENT
from bridge_etl.common.errors import StageError

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 20.0
    read: float = 120.0


@dataclass(frozen=True)
class RetryConfig:
    """One retry after a fixed delay, for the exception types in ``retry_on``."""

    max_attempts: int = 2
    delay: float = 2.0
    retry_on: tuple[type[BaseException], ...] = ()


class HttpRequestError(StageError):
    error_code = "HTTP_ERROR"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryableHttpError(HttpRequestError):
    error_code = "HTTP_TRANSIENT"


class RequestSpacer:
    """Keeps at least ``interval`` seconds between consecutive requests."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = max(interval, 0.0)
        self.clock = clock
        self.last_request_at: float | None = None
        self.lock = threading.Lock()

    def acquire(self) -> None:
        with self.lock:
            if self.last_request_at is not None and self.interval > 0:
                wait_for = self.last_request_at + self.interval - self.clock()
                if wait_for > 0:
                    time.sleep(wait_for)
            self.last_request_at = self.clock()


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        request_interval: float = 0.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig(retry_on=(RetryableHttpError,))
        self.session = requests.Session()
        self.spacer = RequestSpacer(request_interval)
        self.default_headers = dict(headers or {})

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        out.update(self.default_headers)
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response, url: str) -> None:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableHttpError(f"Retryable HTTP status {status} from {url}", status_code=status)
        if status >= 400:
            raise HttpRequestError(f"HTTP status {status} from {url}", status_code=status)

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> requests.Response:
        req_timeout = timeout or self.timeout
        self.spacer.acquire()
        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json_body,
                headers=self._headers(headers),
                timeout=(req_timeout.connect, req_timeout.read),
            )
        except requests.RequestException as exc:
            raise RetryableHttpError(f"Network error for {url}: {exc}") from exc
        self._raise_for_status_or_retry(response, url)
        return response

    def _decode_json(self, response: requests.Response, url: str, *, allow_empty: bool) -> Any:
        if allow_empty and not (response.content or b"").strip():
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise HttpRequestError(f"Invalid JSON payload from {url}") from exc

    def request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
        allow_empty: bool = False,
    ) -> Any:
        @retry(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_fixed(self.retry.delay),
            retry=retry_if_exception_type(self.retry.retry_on),
            reraise=True,
        )
        def _wrapped() -> Any:
            response = self._request(
                method,
                url,
                params=params,
                json_body=json_body,
                headers=headers,
                timeout=timeout,
            )
            return self._decode_json(response, url, allow_empty=allow_empty)

        return _wrapped()

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        return self.request_json("GET", url, params=params, headers=headers, timeout=timeout)

    def post_json(
        self,
        url: str,
        *,
        json_body: Any,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        merged = {"Content-Type": "application/json"}
        if headers:
            merged.update(headers)
        return self.request_json(
            "POST",
            url,
            params=params,
            json_body=json_body,
            headers=merged,
            timeout=timeout,
            allow_empty=True,
        )
