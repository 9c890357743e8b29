"""Interpretation session: validation → quota → streamed generation → tone suggestions.

The session is an explicit state machine::

    IDLE → VALIDATING → QUOTA_CHECKING → STREAMING → COMPLETE | ERRORED
                                          STREAMING → CANCELLED
    COMPLETE | ERRORED | CANCELLED → IDLE   (reset)
    ERRORED → VALIDATING                    (retry)

``submit``/``retry`` drive the network loop themselves. Passing
``dispatch=False`` stops at STREAMING so ``feed``/``finish``/``fail``/``tick``
can be driven by hand, which is how the transitions are tested without a
network.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from datetime import UTC, datetime
from typing import Any

from emojilens.llm import (
    AbortSignal,
    InterpretationPayload,
    MalformedResponseError,
    ServiceConnectionError,
    ServiceError,
    ServiceStatusError,
    ServiceTimeoutError,
    TextGenerationService,
    generate_id,
    loads_trailer,
    split_metrics_marker,
)
from emojilens.models import (
    ErrorKind,
    InterpretationRequest,
    InterpretationResult,
    QuotaSnapshot,
    SessionError,
    SessionState,
    StreamingSession,
    SuggestedResponseTone,
)
from emojilens.quota import QuotaGovernor
from emojilens.tones import suggest_tones
from emojilens.validate import MalformedInputError, extract_emojis, validate_request

logger = logging.getLogger(__name__)

DEFAULT_ADVISORY_SECONDS = 10.0
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_POLL_INTERVAL = 0.25

ADVISORY_MESSAGE = "This is taking longer than expected. Hang tight..."

_ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.TRANSPORT: "Could not reach the interpretation service. Please try again.",
    ErrorKind.STREAM: "The interpretation was interrupted. Please try again.",
    ErrorKind.TIMEOUT: "The interpretation took too long. Please try again.",
    ErrorKind.MALFORMED_RESPONSE: (
        "Something went wrong while interpreting your message. Please try again."
    ),
}

_IN_FLIGHT = frozenset(
    {SessionState.VALIDATING, SessionState.QUOTA_CHECKING, SessionState.STREAMING}
)

# Events passed from the service worker to the session thread.
_CHUNK = "chunk"
_RESULT = "result"
_END = "end"
_ERROR = "error"


class InvalidTransitionError(RuntimeError):
    """Raised when an operation is not allowed in the current state."""


class InterpretationSession:
    """Owns one request lifecycle at a time. Not thread-safe."""

    def __init__(
        self,
        service: TextGenerationService,
        governor: QuotaGovernor,
        *,
        streaming: bool = True,
        advisory_after: float = DEFAULT_ADVISORY_SECONDS,
        timeout_after: float = DEFAULT_TIMEOUT_SECONDS,
        metrics_fallback: bool = True,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        on_update: Callable[[StreamingSession], None] | None = None,
    ) -> None:
        if timeout_after <= advisory_after:
            raise ValueError("timeout_after must be longer than advisory_after")
        self._service = service
        self._governor = governor
        self._streaming = streaming
        self._advisory_after = advisory_after
        self._timeout_after = timeout_after
        self._metrics_fallback = metrics_fallback
        self._poll_interval = poll_interval
        self._clock = clock
        self._on_update = on_update

        self._session = StreamingSession()
        self._last_raw: dict[str, Any] | None = None
        self._reset_request_state()

    # ── read-only views ─────────────────────────────────────────────────

    @property
    def session(self) -> StreamingSession:
        return self._session.model_copy(deep=True)

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def quota(self) -> QuotaSnapshot:
        return self._governor.snapshot()

    @property
    def request(self) -> InterpretationRequest | None:
        return self._request

    @property
    def result(self) -> InterpretationResult | None:
        return self._result

    @property
    def suggestions(self) -> list[SuggestedResponseTone]:
        return list(self._suggestions)

    @property
    def emojis(self) -> list[str]:
        """Unique emojis of the current request, for the breakdown display."""
        return list(self._emojis)

    def elapsed(self) -> float:
        """Seconds since streaming began; frozen once the session ends."""
        if self._started is None:
            return 0.0
        end = self._ended if self._ended is not None else self._clock()
        return max(0.0, end - self._started)

    # ── caller actions ──────────────────────────────────────────────────

    def submit(self, raw: Mapping[str, Any], *, dispatch: bool = True) -> StreamingSession:
        """Start a new interpretation. A finished session is reset implicitly."""
        if not isinstance(raw, Mapping):
            raise MalformedInputError("Request must be an object with message, platform, context")
        if self._session.state in _IN_FLIGHT:
            raise InvalidTransitionError(f"Cannot submit while {self._session.state.value}")
        if self._session.terminal:
            self._clear()

        self._last_raw = dict(raw)
        if self._begin(self._last_raw) and dispatch:
            self._run()
        return self.session

    def retry(self, *, dispatch: bool = True) -> StreamingSession:
        """Re-run the last submitted request after an error, with a fresh quota check."""
        if self._session.state is not SessionState.ERRORED or self._last_raw is None:
            raise InvalidTransitionError(
                f"retry() is only valid after an error, not while {self._session.state.value}"
            )
        logger.info("Retrying last request")
        self._clear()
        if self._begin(self._last_raw) and dispatch:
            self._run()
        return self.session

    def cancel(self) -> StreamingSession:
        """Abort an in-flight stream. The reserved quota slot is kept."""
        if self._session.state is not SessionState.STREAMING:
            logger.debug("cancel() ignored while %s", self._session.state.value)
            return self.session
        if self._signal is not None:
            self._signal.abort()
        self._transition(SessionState.CANCELLED)
        logger.info("Interpretation cancelled after %d chars", len(self._session.accumulated_text))
        return self.session

    def reset(self) -> StreamingSession:
        """Return a finished session to IDLE. Idempotent on an idle session."""
        if self._session.state is SessionState.IDLE:
            return self.session
        if not self._session.terminal:
            raise InvalidTransitionError(f"Cannot reset while {self._session.state.value}")
        self._clear()
        self._notify()
        return self.session

    # ── stream events ───────────────────────────────────────────────────

    def feed(self, chunk: str) -> None:
        """Append one chunk, in arrival order. Ignored outside STREAMING."""
        if self._session.state is not SessionState.STREAMING:
            logger.debug("Dropping chunk received while %s", self._session.state.value)
            return
        self._session.accumulated_text += chunk
        self._received_any = True
        self._session.advisory = False
        self._last_activity = self._clock()
        self._notify()

    def finish(self, payload: InterpretationPayload | None = None) -> None:
        """Normal end of stream: resolve metrics and compute tone suggestions."""
        if self._session.state is not SessionState.STREAMING:
            return
        prose, trailer = split_metrics_marker(self._session.accumulated_text)
        if payload is None and trailer is not None:
            try:
                payload = loads_trailer(trailer)
            except MalformedResponseError as exc:
                self.fail(exc)
                return
        if payload is None and self._metrics_fallback:
            payload = self._fetch_metrics()

        if payload is not None:
            self._result = self._build_result(prose, payload)
            self._suggestions = suggest_tones(payload.metrics)
        self._transition(SessionState.COMPLETE)
        logger.info(
            "Interpretation complete in %.1fs (%d suggestions)",
            self.elapsed(),
            len(self._suggestions),
        )

    def fail(self, exc: BaseException) -> None:
        """Convert a service failure into a terminal ERRORED state."""
        if self._session.state is not SessionState.STREAMING:
            return
        if isinstance(exc, MalformedResponseError):
            logger.warning("Malformed response from %s: %s", self._service.name, exc)
            kind = ErrorKind.MALFORMED_RESPONSE
        elif isinstance(exc, ServiceTimeoutError):
            kind = ErrorKind.TIMEOUT
        elif not self._received_any and isinstance(
            exc, (ServiceConnectionError, ServiceStatusError)
        ):
            kind = ErrorKind.TRANSPORT
        else:
            kind = ErrorKind.STREAM

        if kind is ErrorKind.TRANSPORT:
            # Nothing was produced, so the slot reserved at dispatch is handed back.
            self._governor.refund()
        logger.warning("Interpretation failed (%s): %s", kind.value, exc)
        self._error(kind, _ERROR_MESSAGES[kind])

    def tick(self, now: float | None = None) -> None:
        """Evaluate the advisory and hard-timeout timers."""
        if self._session.state is not SessionState.STREAMING or self._last_activity is None:
            return
        now = self._clock() if now is None else now
        idle = now - self._last_activity

        if idle >= self._timeout_after:
            if self._signal is not None:
                self._signal.abort()
            self.fail(ServiceTimeoutError(f"No data for {idle:.1f}s"))
            return
        if not self._received_any and not self._session.advisory and idle >= self._advisory_after:
            self._session.advisory = True
            logger.info("No data after %.1fs; showing advisory", idle)
            self._notify()

    # ── private ─────────────────────────────────────────────────────────

    def _begin(self, raw: Mapping[str, Any]) -> bool:
        self._transition(SessionState.VALIDATING)
        validation = validate_request(raw)
        if not validation.ok:
            self._error(
                ErrorKind.VALIDATION, validation.message, field_errors=validation.field_errors
            )
            return False
        self._request = validation.request
        self._emojis = extract_emojis(self._request.message)

        self._transition(SessionState.QUOTA_CHECKING)
        check = self._governor.check()
        if not check.allowed:
            reset_in = self._governor.reset_in()
            self._error(
                ErrorKind.QUOTA_EXCEEDED,
                f"You've used all {self._governor.max_uses} free interpretations for today. "
                f"Try again in {reset_in}.",
                reset_at=check.reset_at,
                reset_in=reset_in,
            )
            return False

        remaining = self._governor.record_use()
        logger.info("Dispatching to %s (%d uses left today)", self._service.name, remaining)
        self._signal = AbortSignal()
        self._started = self._last_activity = self._clock()
        self._session.started_at = datetime.now(UTC)
        self._transition(SessionState.STREAMING)
        return True

    def _run(self) -> None:
        """Drive the service until the session leaves STREAMING.

        The service is read on a worker thread that only hands events over a
        queue; every state change happens here, on the caller's thread. Timers
        are evaluated whenever the queue stays quiet for ``poll_interval``.
        """
        assert self._request is not None and self._signal is not None
        events: queue.Queue[tuple[str, Any]] = queue.Queue()
        worker = threading.Thread(
            target=self._produce,
            args=(self._request, self._signal, events),
            name="emojilens-stream",
            daemon=True,
        )
        worker.start()
        try:
            while self._session.state is SessionState.STREAMING:
                try:
                    kind, value = events.get(timeout=self._poll_interval)
                except queue.Empty:
                    self.tick()
                    continue
                self.tick()
                if kind == _CHUNK:
                    self.feed(value)
                elif kind == _RESULT:
                    self.feed(value.interpretation)
                    self.finish(_payload_from_result(value))
                elif kind == _END:
                    self.finish()
                else:
                    self._fail_from(value)
        except Exception as exc:
            logger.exception("Interpretation loop failed")
            self.fail(ServiceError(str(exc) or type(exc).__name__))
        finally:
            if self._signal is not None and self._session.state is not SessionState.STREAMING:
                self._signal.abort()

    def _produce(
        self,
        request: InterpretationRequest,
        signal: AbortSignal,
        events: queue.Queue[tuple[str, Any]],
    ) -> None:
        # Runs on the worker thread: talks to the service, never to session state.
        try:
            if not self._streaming:
                events.put((_RESULT, self._service.interpret(request)))
                return
            chunks: Iterator[str] = self._service.stream(request, signal)
            try:
                for chunk in chunks:
                    if signal.aborted:
                        return
                    events.put((_CHUNK, chunk))
            finally:
                close = getattr(chunks, "close", None)
                if close is not None:
                    close()
            events.put((_END, None))
        except Exception as exc:
            events.put((_ERROR, exc))

    def _fail_from(self, exc: Exception) -> None:
        if isinstance(exc, ServiceError):
            self.fail(exc)
            return
        logger.error(
            "Unexpected %s from %s", type(exc).__name__, self._service.name, exc_info=exc
        )
        self.fail(ServiceError(str(exc) or type(exc).__name__))

    def _fetch_metrics(self) -> InterpretationPayload | None:
        """Streams without a trailer get metrics from a one-shot call."""
        assert self._request is not None
        try:
            result = self._service.interpret(self._request)
        except ServiceError as exc:
            logger.warning("Metrics fallback failed; no tone suggestions: %s", exc)
            return None
        return _payload_from_result(result)

    def _build_result(self, prose: str, payload: InterpretationPayload) -> InterpretationResult:
        assert self._request is not None
        return InterpretationResult(
            id=generate_id(),
            message=self._request.message,
            emojis=payload.emojis,
            interpretation=prose or payload.interpretation,
            metrics=payload.metrics,
            red_flags=payload.red_flags,
            timestamp=datetime.now(UTC),
            placeholder=payload.placeholder,
        )

    def _error(self, kind: ErrorKind, message: str, **extra: Any) -> None:
        self._session.error = SessionError(kind=kind, message=message, **extra)
        self._session.advisory = False
        self._transition(SessionState.ERRORED)

    def _transition(self, state: SessionState) -> None:
        logger.debug("Session %s -> %s", self._session.state.value, state.value)
        self._session.state = state
        if self._session.terminal and self._started is not None:
            self._ended = self._clock()
        self._notify()

    def _notify(self) -> None:
        if self._on_update is not None:
            self._on_update(self.session)

    def _clear(self) -> None:
        self._session = StreamingSession()
        self._reset_request_state()

    def _reset_request_state(self) -> None:
        self._request: InterpretationRequest | None = None
        self._signal: AbortSignal | None = None
        self._result: InterpretationResult | None = None
        self._suggestions: list[SuggestedResponseTone] = []
        self._emojis: list[str] = []
        self._received_any = False
        self._started: float | None = None
        self._ended: float | None = None
        self._last_activity: float | None = None


def _payload_from_result(result: InterpretationResult) -> InterpretationPayload:
    return InterpretationPayload(
        emojis=result.emojis,
        interpretation=result.interpretation,
        metrics=result.metrics,
        red_flags=result.red_flags,
        placeholder=result.placeholder,
    )
