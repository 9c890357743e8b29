"""Client for a remote interpretation endpoint (JSON and streamed text)."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import requests
from pydantic import ValidationError

from emojilens.llm import (
    AbortSignal,
    MalformedResponseError,
    ServiceConnectionError,
    ServiceStatusError,
    ServiceTimeoutError,
    TextGenerationService,
)
from emojilens.models import InterpretationRequest, InterpretationResult

logger = logging.getLogger(__name__)

_INTERPRET_PATH = "/api/interpret"
_STREAM_PATH = "/api/interpret/stream"
_CONNECT_TIMEOUT = 10


class HttpService(TextGenerationService):
    """Thin wrapper around ``POST /api/interpret`` and ``POST /api/interpret/stream``.

    The stream endpoint returns bare prose, so metrics come from a follow-up
    ``interpret`` call made by the session.
    """

    name = "http"

    def __init__(self, base_url: str, timeout: float = 30.0) -> None:
        if not base_url:
            raise ValueError("EMOJILENS_SERVICE_URL is required but was empty.")
        self._base_url = base_url.rstrip("/")
        self._timeout = (_CONNECT_TIMEOUT, timeout)
        self._session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    # ── public ──────────────────────────────────────────────────────────
    def interpret(self, request: InterpretationRequest) -> InterpretationResult:
        resp = self._post(_INTERPRET_PATH, request, stream=False)
        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedResponseError("Response body is not JSON") from exc
        try:
            return InterpretationResult.model_validate(data)
        except ValidationError as exc:
            raise MalformedResponseError(f"Invalid interpretation result: {exc}") from exc

    def stream(self, request: InterpretationRequest, signal: AbortSignal) -> Iterator[str]:
        resp = self._post(_STREAM_PATH, request, stream=True)
        if resp.encoding is None:
            resp.encoding = "utf-8"
        try:
            for chunk in resp.iter_content(chunk_size=None, decode_unicode=True):
                if signal.aborted:
                    logger.info("Stream aborted by caller")
                    return
                if chunk:
                    yield chunk
        except requests.exceptions.Timeout as exc:
            raise ServiceTimeoutError(str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            raise ServiceConnectionError(str(exc)) from exc
        finally:
            resp.close()

    # ── private ─────────────────────────────────────────────────────────
    def _post(
        self, path: str, request: InterpretationRequest, *, stream: bool
    ) -> requests.Response:
        body: dict[str, Any] = request.model_dump(mode="json")
        url = f"{self._base_url}{path}"
        try:
            resp = self._session.post(url, json=body, timeout=self._timeout, stream=stream)
        except requests.exceptions.ConnectionError as exc:
            raise ServiceConnectionError(f"Could not reach {url}: {exc}") from exc
        except requests.exceptions.Timeout as exc:
            raise ServiceTimeoutError(f"Timed out waiting for {url}") from exc
        except requests.exceptions.RequestException as exc:
            # Bad scheme or URL: the request never left the process.
            raise ServiceConnectionError(f"Could not send request to {url}: {exc}") from exc

        if resp.status_code != 200:
            message = _error_message(resp)
            resp.close()
            logger.warning("%s returned %d: %s", url, resp.status_code, message)
            raise ServiceStatusError(resp.status_code, message)
        return resp


def _error_message(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:500]
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return f"Request failed with status {resp.status_code}"
