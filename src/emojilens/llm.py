"""Text-generation backends that turn a validated request into an interpretation.

Every backend offers two shapes: ``interpret`` returns one parsed
``InterpretationResult``; ``stream`` yields the interpretation prose in chunks,
optionally followed by a ``[[METRICS]]{json}`` trailer carrying metrics,
red flags and the emoji breakdown.
"""

from __future__ import annotations

import abc
import json
import logging
import secrets
import time
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any

import httpx
import openai
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from emojilens.models import (
    DetectedEmoji,
    InterpretationMetrics,
    InterpretationRequest,
    InterpretationResult,
    OverallTone,
    Platform,
    RedFlag,
    RelationshipContext,
)
from emojilens.validate import extract_emojis

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4-turbo"
METRICS_MARKER = "[[METRICS]]"

# ── Prompts ────────────────────────────────────────────────────────────────
_SYSTEM_PROMPT = (
    "You are an expert emoji interpreter specializing in understanding the nuanced, "
    "contextual meanings of emojis in modern digital communication.\n\n"
    "Analyze messages containing emojis based on:\n"
    "1. Literal vs contextual meaning of each emoji.\n"
    "2. Platform-specific conventions (iMessage, Instagram, TikTok, Slack, Discord, "
    "Twitter, WhatsApp).\n"
    "3. Relationship context (romantic partner, friend, family, coworker, "
    "acquaintance, stranger).\n"
    "4. Tone: sarcasm probability (0-100), passive-aggression probability (0-100), "
    "overall tone (positive, neutral or negative) and your confidence (0-100).\n"
    "5. Red flags such as manipulation, guilt-tripping, gaslighting, boundary "
    "violations, love bombing or mixed signals, each with severity low, medium or high.\n\n"
    "Be honest and direct. If a message seems concerning, say so clearly."
)

_JSON_INSTRUCTIONS = (
    "Provide your analysis as a JSON object with these fields:\n"
    "- emojis: Array of {character, meaning} for each emoji detected\n"
    "- interpretation: Overall interpretation of the message\n"
    "- metrics: {sarcasmProbability, passiveAggressionProbability, overallTone, confidence}\n"
    "- redFlags: Array of {type, description, severity} for any concerns"
)

_STREAM_INSTRUCTIONS = (
    "Write the interpretation as plain prose first. Then, on a final line of its own, "
    f"write {METRICS_MARKER} immediately followed by a compact JSON object with the "
    "fields emojis, metrics and redFlags (same shapes as above, without interpretation)."
)

PLATFORM_LABELS: dict[Platform, str] = {
    Platform.IMESSAGE: "Apple iMessage",
    Platform.INSTAGRAM: "Instagram DMs",
    Platform.TIKTOK: "TikTok comments/messages",
    Platform.WHATSAPP: "WhatsApp",
    Platform.SLACK: "Slack workplace messaging",
    Platform.DISCORD: "Discord",
    Platform.TWITTER: "Twitter/X DMs",
    Platform.OTHER: "Other platform",
}

CONTEXT_LABELS: dict[RelationshipContext, str] = {
    RelationshipContext.ROMANTIC_PARTNER: "Someone you are dating or in a relationship with",
    RelationshipContext.FRIEND: "A friend or close acquaintance",
    RelationshipContext.FAMILY: "A family member",
    RelationshipContext.COWORKER: "A colleague or professional contact",
    RelationshipContext.ACQUAINTANCE: "Someone you know casually",
    RelationshipContext.STRANGER: "Someone you do not know personally",
}

_PLACEHOLDER_INTERPRETATION = (
    "This is a placeholder interpretation. The AI interpretation service is not "
    "configured or could not be reached. When it is available, this will provide a "
    "detailed analysis of the emoji meanings based on context, platform and relationship."
)
_PLACEHOLDER_MEANING = "Interpretation pending - AI service not configured"


# ── Errors ─────────────────────────────────────────────────────────────────


class ServiceError(Exception):
    """Base class for text-generation failures."""


class ServiceConnectionError(ServiceError):
    """The service could not be reached."""


class ServiceTimeoutError(ServiceError):
    """The service did not answer in time."""


class ServiceStatusError(ServiceError):
    """The service answered with a non-success status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        super().__init__(message or f"Service returned status {status_code}")
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return is_retryable_status(self.status_code)


class MalformedResponseError(ServiceError):
    """The service answered with something that is not a valid interpretation."""


def is_retryable_status(status_code: int | None) -> bool:
    """Rate limits and server errors are transient; everything else is not."""
    if not status_code:
        return False
    return status_code == 429 or 500 <= status_code < 600


# ── Abort signal ───────────────────────────────────────────────────────────


class AbortSignal:
    """Cooperative cancellation flag checked by streams between chunks."""

    def __init__(self) -> None:
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self) -> None:
        self._aborted = True


# ── Wire payloads ──────────────────────────────────────────────────────────


class InterpretationPayload(BaseModel):
    """The JSON body a model returns. ``interpretation`` is absent in stream trailers."""

    model_config = ConfigDict(populate_by_name=True)

    emojis: list[DetectedEmoji] = Field(default_factory=list)
    interpretation: str = ""
    metrics: InterpretationMetrics
    red_flags: list[RedFlag] = Field(default_factory=list, alias="redFlags")
    placeholder: bool = False


def parse_interpretation_payload(raw: str | dict[str, Any]) -> InterpretationPayload:
    """Validate a JSON string or dict against the payload schema."""
    try:
        if isinstance(raw, str):
            return InterpretationPayload.model_validate_json(raw)
        return InterpretationPayload.model_validate(raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise MalformedResponseError(f"Invalid response structure: {problems}") from exc


def split_metrics_marker(text: str) -> tuple[str, str | None]:
    """Separate streamed prose from its trailing metrics JSON, if any."""
    idx = text.rfind(METRICS_MARKER)
    if idx == -1:
        return text.strip(), None
    return text[:idx].strip(), text[idx + len(METRICS_MARKER):].strip()


def generate_id() -> str:
    return f"int_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def build_result(
    request: InterpretationRequest, payload: InterpretationPayload
) -> InterpretationResult:
    return InterpretationResult(
        id=generate_id(),
        message=request.message,
        emojis=payload.emojis,
        interpretation=payload.interpretation,
        metrics=payload.metrics,
        red_flags=payload.red_flags,
        timestamp=datetime.now(UTC),
        placeholder=payload.placeholder,
    )


def build_interpretation_prompt(request: InterpretationRequest) -> str:
    platform_label = PLATFORM_LABELS.get(request.platform, "")
    context_label = CONTEXT_LABELS.get(request.context, "")
    return (
        "Analyze the following message and provide your interpretation.\n\n"
        f'**Message:** "{request.message}"\n\n'
        f"**Platform:** {request.platform.value}"
        f"{f' ({platform_label})' if platform_label else ''}\n\n"
        f"**Relationship Context:** {request.context.value}"
        f"{f' - {context_label}' if context_label else ''}\n\n"
        f"{_JSON_INSTRUCTIONS}"
    )


def placeholder_payload(request: InterpretationRequest) -> InterpretationPayload:
    return InterpretationPayload(
        emojis=[
            DetectedEmoji(character=e, meaning=_PLACEHOLDER_MEANING)
            for e in extract_emojis(request.message)
        ],
        interpretation=_PLACEHOLDER_INTERPRETATION,
        metrics=InterpretationMetrics(
            sarcasm_probability=0,
            passive_aggression_probability=0,
            overall_tone=OverallTone.NEUTRAL,
            confidence=0,
        ),
        red_flags=[],
        placeholder=True,
    )


def _trailer_json(payload: InterpretationPayload) -> str:
    return payload.model_dump_json(by_alias=True, exclude={"interpretation"})


# ── Backends ───────────────────────────────────────────────────────────────


class TextGenerationService(abc.ABC):
    """Uniform interface over the live model, a remote endpoint or the placeholder."""

    name = "service"

    @abc.abstractmethod
    def interpret(self, request: InterpretationRequest) -> InterpretationResult:
        """Return one complete interpretation."""

    @abc.abstractmethod
    def stream(self, request: InterpretationRequest, signal: AbortSignal) -> Iterator[str]:
        """Yield interpretation text chunks; stop early once *signal* is aborted."""


class PlaceholderService(TextGenerationService):
    """Deterministic stand-in used when no live service is available."""

    name = "placeholder"

    def interpret(self, request: InterpretationRequest) -> InterpretationResult:
        return build_result(request, placeholder_payload(request))

    def stream(self, request: InterpretationRequest, signal: AbortSignal) -> Iterator[str]:
        payload = placeholder_payload(request)
        for sentence in payload.interpretation.split(". "):
            if signal.aborted:
                return
            yield sentence if sentence.endswith(".") else f"{sentence}. "
        if not signal.aborted:
            yield dumps_trailer(payload)


class OpenAIService(TextGenerationService):
    """Chat-completions backend using the OpenAI SDK."""

    name = "openai"

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, timeout: float = 30.0) -> None:
        if not api_key:
            raise ValueError("LLM_API_KEY is required but was empty.")
        self._model = model
        self._client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    # ── public ──────────────────────────────────────────────────────────

    def interpret(self, request: InterpretationRequest) -> InterpretationResult:
        try:
            resp = self._client.chat.completions.create(
                model=self._model,
                messages=self._messages(request, streaming=False),
                response_format={"type": "json_object"},
                temperature=0.7,
                max_tokens=1000,
            )
        except openai.OpenAIError as exc:
            raise _translate_openai_error(exc) from exc

        content = resp.choices[0].message.content if resp.choices else None
        if not content:
            raise MalformedResponseError("Empty response from the model")
        payload = parse_interpretation_payload(content)
        return build_result(request, payload)

    def stream(self, request: InterpretationRequest, signal: AbortSignal) -> Iterator[str]:
        try:
            stream = self._client.chat.completions.create(
                model=self._model,
                messages=self._messages(request, streaming=True),
                temperature=0.7,
                max_tokens=1000,
                stream=True,
            )
        except openai.OpenAIError as exc:
            raise _translate_openai_error(exc) from exc

        try:
            for chunk in stream:
                if signal.aborted:
                    logger.info("Stream aborted by caller")
                    return
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.OpenAIError as exc:
            raise _translate_openai_error(exc) from exc
        except httpx.TimeoutException as exc:
            raise ServiceTimeoutError(f"Stream stalled: {exc}") from exc
        except httpx.HTTPError as exc:
            # The SDK does not wrap transport errors raised while iterating.
            raise ServiceConnectionError(f"Stream interrupted: {exc}") from exc
        finally:
            stream.close()

    # ── private ─────────────────────────────────────────────────────────

    @staticmethod
    def _messages(request: InterpretationRequest, *, streaming: bool) -> list[dict[str, str]]:
        user = build_interpretation_prompt(request)
        if streaming:
            user = f"{user}\n\n{_STREAM_INSTRUCTIONS}"
        return [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": user},
        ]


class PlaceholderFallback(TextGenerationService):
    """Wraps a live backend and substitutes the placeholder when it is unreachable.

    Only connection failures before any output are covered; status errors,
    timeouts and malformed responses still propagate.
    """

    def __init__(self, inner: TextGenerationService) -> None:
        self._inner = inner
        self._placeholder = PlaceholderService()
        self.name = f"{inner.name}+placeholder"

    def interpret(self, request: InterpretationRequest) -> InterpretationResult:
        try:
            return self._inner.interpret(request)
        except ServiceConnectionError as exc:
            logger.warning("%s unreachable (%s); returning placeholder", self._inner.name, exc)
            return self._placeholder.interpret(request)

    def stream(self, request: InterpretationRequest, signal: AbortSignal) -> Iterator[str]:
        chunks = self._inner.stream(request, signal)
        try:
            first = next(chunks)
        except StopIteration:
            return
        except ServiceConnectionError as exc:
            logger.warning("%s unreachable (%s); streaming placeholder", self._inner.name, exc)
            yield from self._placeholder.stream(request, signal)
            return
        yield first
        yield from chunks


def _translate_openai_error(exc: openai.OpenAIError) -> ServiceError:
    # APITimeoutError subclasses APIConnectionError, so it is checked first.
    if isinstance(exc, openai.APITimeoutError):
        return ServiceTimeoutError(str(exc))
    if isinstance(exc, openai.APIConnectionError):
        return ServiceConnectionError(str(exc))
    if isinstance(exc, openai.APIStatusError):
        return ServiceStatusError(exc.status_code, str(exc))
    return ServiceError(str(exc))


def build_service(
    provider: str,
    api_key: str = "",
    model: str = DEFAULT_MODEL,
    service_url: str = "",
    *,
    enabled: bool = True,
    timeout: float = 30.0,
    placeholder_fallback: bool = True,
) -> TextGenerationService:
    """Pick a backend from configuration; unconfigured setups get the placeholder."""
    if not enabled:
        logger.info("Interpreter disabled; using placeholder results.")
        return PlaceholderService()

    provider = provider.lower()
    service: TextGenerationService
    if provider == "openai":
        if not api_key:
            logger.warning("LLM_API_KEY not set; interpretations will use placeholder results.")
            return PlaceholderService()
        service = OpenAIService(api_key=api_key, model=model, timeout=timeout)
    elif provider == "http":
        if not service_url:
            logger.warning(
                "EMOJILENS_SERVICE_URL not set; interpretations will use placeholder results."
            )
            return PlaceholderService()
        from emojilens.client import HttpService

        service = HttpService(base_url=service_url, timeout=timeout)
    else:
        logger.warning("Unknown LLM_PROVIDER '%s'; using placeholder results.", provider)
        return PlaceholderService()

    return PlaceholderFallback(service) if placeholder_fallback else service


def dumps_trailer(payload: InterpretationPayload) -> str:
    """Render the marker line a streaming backend appends after its prose."""
    return f"\n{METRICS_MARKER}{_trailer_json(payload)}"


def loads_trailer(raw: str) -> InterpretationPayload:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError("Metrics trailer is not valid JSON") from exc
    if not isinstance(data, dict):
        raise MalformedResponseError("Metrics trailer must be a JSON object")
    return parse_interpretation_payload(data)
