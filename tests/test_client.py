"""Unit tests for the remote interpretation client (no network)."""

from collections.abc import Iterator
from typing import Any

import pytest
import requests

from emojilens.client import HttpService
from emojilens.llm import (
    AbortSignal,
    MalformedResponseError,
    ServiceConnectionError,
    ServiceStatusError,
    ServiceTimeoutError,
)
from emojilens.models import InterpretationRequest, Platform, RelationshipContext

WAVE = "\U0001f44b"


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        body: Any = None,
        text: str = "",
        chunks: list[str] | None = None,
    ) -> None:
        self.status_code = status_code
        self._body = body
        self.text = text
        self._chunks = chunks or []
        self.encoding: str | None = None
        self.closed = False

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no json")
        return self._body

    def iter_content(
        self, chunk_size: int | None = None, decode_unicode: bool = False
    ) -> Iterator[str]:
        yield from self._chunks

    def close(self) -> None:
        self.closed = True


def _request() -> InterpretationRequest:
    return InterpretationRequest(
        message=f"Hey there! {WAVE} how are you?",
        platform=Platform.DISCORD,
        context=RelationshipContext.FRIEND,
    )


def _service(monkeypatch: pytest.MonkeyPatch, outcome: Any) -> tuple[HttpService, list[dict]]:
    service = HttpService("http://interp.test/")
    calls: list[dict] = []

    def fake_post(url: str, **kwargs: Any) -> FakeResponse:
        calls.append({"url": url, **kwargs})
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(service._session, "post", fake_post)
    return service, calls


def _result_json() -> dict:
    return {
        "id": "int_1_abcd",
        "message": f"Hey there! {WAVE} how are you?",
        "emojis": [{"character": WAVE, "meaning": "hello"}],
        "interpretation": "A friendly hello.",
        "metrics": {
            "sarcasmProbability": 0,
            "passiveAggressionProbability": 0,
            "overallTone": "positive",
            "confidence": 88,
        },
        "redFlags": [],
        "timestamp": "2026-10-18T12:00:00Z",
    }


class TestInterpret:
    def test_success(self, monkeypatch: pytest.MonkeyPatch) -> None:
        service, calls = _service(monkeypatch, FakeResponse(body=_result_json()))
        result = service.interpret(_request())
        assert result.interpretation == "A friendly hello."
        assert result.metrics.confidence == 88
        assert calls[0]["url"] == "http://interp.test/api/interpret"
        assert calls[0]["json"] == {
            "message": f"Hey there! {WAVE} how are you?",
            "platform": "DISCORD",
            "context": "FRIEND",
        }

    def test_invalid_body(self, monkeypatch: pytest.MonkeyPatch) -> None:
        service, _ = _service(monkeypatch, FakeResponse(body={"id": "x"}))
        with pytest.raises(MalformedResponseError):
            service.interpret(_request())

    def test_non_json_body(self, monkeypatch: pytest.MonkeyPatch) -> None:
        service, _ = _service(monkeypatch, FakeResponse(text="<html>"))
        with pytest.raises(MalformedResponseError):
            service.interpret(_request())

    def test_status_error_uses_error_field(self, monkeypatch: pytest.MonkeyPatch) -> None:
        resp = FakeResponse(status_code=429, body={"error": "Too many requests"})
        service, _ = _service(monkeypatch, resp)
        with pytest.raises(ServiceStatusError) as excinfo:
            service.interpret(_request())
        assert excinfo.value.status_code == 429
        assert excinfo.value.retryable
        assert str(excinfo.value) == "Too many requests"
        assert resp.closed

    def test_connection_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        service, _ = _service(monkeypatch, requests.exceptions.ConnectionError("refused"))
        with pytest.raises(ServiceConnectionError):
            service.interpret(_request())

    def test_timeout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        service, _ = _service(monkeypatch, requests.exceptions.ReadTimeout("slow"))
        with pytest.raises(ServiceTimeoutError):
            service.interpret(_request())

    @pytest.mark.parametrize(
        "error",
        [
            requests.exceptions.InvalidSchema("No connection adapters"),
            requests.exceptions.MissingSchema("No scheme supplied"),
            requests.exceptions.InvalidURL("Invalid URL"),
        ],
    )
    def test_unsendable_request(
        self, monkeypatch: pytest.MonkeyPatch, error: Exception
    ) -> None:
        service, _ = _service(monkeypatch, error)
        with pytest.raises(ServiceConnectionError):
            service.interpret(_request())

    def test_url_without_scheme(self) -> None:
        with pytest.raises(ServiceConnectionError):
            HttpService("localhost:9").interpret(_request())


class TestStream:
    def test_yields_chunks_in_order(self, monkeypatch: pytest.MonkeyPatch) -> None:
        resp = FakeResponse(chunks=["A friendly ", "", "hello."])
        service, calls = _service(monkeypatch, resp)
        assert list(service.stream(_request(), AbortSignal())) == ["A friendly ", "hello."]
        assert calls[0]["url"] == "http://interp.test/api/interpret/stream"
        assert calls[0]["stream"] is True
        assert resp.encoding == "utf-8"
        assert resp.closed

    def test_stops_after_abort(self, monkeypatch: pytest.MonkeyPatch) -> None:
        resp = FakeResponse(chunks=["one", "two", "three"])
        service, _ = _service(monkeypatch, resp)
        signal = AbortSignal()
        received = []
        for chunk in service.stream(_request(), signal):
            received.append(chunk)
            signal.abort()
        assert received == ["one"]
        assert resp.closed

    def test_status_error_before_first_chunk(self, monkeypatch: pytest.MonkeyPatch) -> None:
        service, _ = _service(monkeypatch, FakeResponse(status_code=500, text="boom"))
        with pytest.raises(ServiceStatusError) as excinfo:
            list(service.stream(_request(), AbortSignal()))
        assert str(excinfo.value) == "boom"


def test_requires_base_url() -> None:
    with pytest.raises(ValueError):
        HttpService("")
