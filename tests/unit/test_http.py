from __future__ import annotations

import pytest
import requests

from bridge_etl.common import http
from bridge_etl.common.http import HttpClient, HttpRequestError, RequestSpacer, RetryConfig, RetryableHttpError


class FakeResponse:
    def __init__(self, status_code: int, payload=None, raises_json: bool = False, content: bytes = b"{}"):
        self.status_code = status_code
        self._payload = payload
        self._raises_json = raises_json
        self.content = content

    def json(self):
        if self._raises_json:
            raise ValueError("bad json")
        return self._payload


def test_http_get_json_success(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))

    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, {"ok": True}))
    payload = client.get_json("https://example.com")

    assert payload == {"ok": True}


def test_http_retryable_status_raises_retryable_error(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(503, {"x": 1}))

    with pytest.raises(RetryableHttpError) as excinfo:
        client.get_json("https://example.com")
    assert excinfo.value.status_code == 503


def test_http_client_error_is_not_transient(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(400, {}))

    with pytest.raises(HttpRequestError) as excinfo:
        client.get_json("https://example.com")
    assert not isinstance(excinfo.value, RetryableHttpError)


def test_http_invalid_json_raises(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, raises_json=True))

    with pytest.raises(HttpRequestError):
        client.get_json("https://example.com")


def test_http_retries_once_then_succeeds(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=2, delay=0, retry_on=(HttpRequestError,)))
    responses = [FakeResponse(502, {}), FakeResponse(200, {"features": []})]
    calls = []

    def fake_request(**kwargs):
        calls.append(kwargs)
        return responses.pop(0)

    monkeypatch.setattr(client.session, "request", fake_request)

    assert client.get_json("https://example.com", params={"a": 1}) == {"features": []}
    assert len(calls) == 2
    assert calls[1]["params"] == {"a": 1}


def test_http_gives_up_after_single_retry(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=2, delay=0, retry_on=(HttpRequestError,)))
    calls = []

    def fake_request(**kwargs):
        calls.append(kwargs)
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(client.session, "request", fake_request)

    with pytest.raises(RetryableHttpError):
        client.get_json("https://example.com")
    assert len(calls) == 2


def test_post_json_accepts_empty_body(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1), headers={"apikey": "k"})
    seen = {}

    def fake_request(**kwargs):
        seen.update(kwargs)
        return FakeResponse(201, raises_json=True, content=b"")

    monkeypatch.setattr(client.session, "request", fake_request)

    assert client.post_json("https://example.com/rest/v1/t", json_body=[{"a": 1}]) is None
    assert seen["method"] == "POST"
    assert seen["json"] == [{"a": 1}]
    assert seen["headers"]["apikey"] == "k"
    assert seen["headers"]["Content-Type"] == "application/json"


def test_request_spacer_waits_between_requests(monkeypatch):
    now = [100.0]
    sleeps = []
    monkeypatch.setattr(http.time, "sleep", lambda seconds: sleeps.append(seconds))

    spacer = RequestSpacer(0.5, clock=lambda: now[0])
    spacer.acquire()
    now[0] += 0.2
    spacer.acquire()

    assert sleeps == [pytest.approx(0.3)]
