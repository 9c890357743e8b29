"""Request validation and emoji extraction for submitted messages."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from emojilens.models import (
    ExtractedEmoji,
    InterpretationRequest,
    Platform,
    RelationshipContext,
)

logger = logging.getLogger(__name__)

MIN_MESSAGE_LENGTH = 10
MAX_MESSAGE_LENGTH = 1000

# ── Emoji pattern ──────────────────────────────────────────────────────────
# Pictographic code points (Extended_Pictographic / Emoji_Presentation blocks).
_PICTO = (
    "["
    "\u00a9\u00ae\u203c\u2049\u2122\u2139"
    "\u2194-\u2199\u21a9\u21aa\u231a\u231b\u2328\u23cf"
    "\u23e9-\u23f3\u23f8-\u23fa\u24c2\u25aa\u25ab\u25b6\u25c0\u25fb-\u25fe"
    "\u2600-\u2605\u2607-\u2612\u2614-\u2685\u2690-\u2705\u2708-\u2712"
    "\u2714\u2716\u271d\u2721\u2728\u2733\u2734\u2744\u2747\u274c\u274e"
    "\u2753-\u2755\u2757\u2763-\u2767\u2795-\u2797\u27a1\u27b0\u27bf"
    "\u2934\u2935\u2b05-\u2b07\u2b1b\u2b1c\u2b50\u2b55"
    "\u3030\u303d\u3297\u3299"
    "\U0001f000-\U0001faff"
    "]"
)
_FLAG = "[\U0001f1e6-\U0001f1ff]{2}"
_KEYCAP = "[0-9#*]\ufe0f?\u20e3"
_MODIFIER = "[\U0001f3fb-\U0001f3ff]"
_TAGS = "[\U000e0020-\U000e007f]"
_ELEMENT = f"(?:{_FLAG}|{_KEYCAP}|{_PICTO}\ufe0f?{_MODIFIER}?{_TAGS}*)"

# One match per grapheme: skin tones, flags and ZWJ families stay whole.
EMOJI_RE = re.compile(f"{_ELEMENT}(?:\u200d{_ELEMENT})*")

_PLATFORM_VALUES = [p.value for p in Platform]
_CONTEXT_VALUES = [c.value for c in RelationshipContext]


class MalformedInputError(ValueError):
    """Raised when a request body is not a JSON object."""


class ValidationResult(BaseModel):
    request: InterpretationRequest | None = None
    field_errors: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.request is not None

    @property
    def message(self) -> str:
        """First error message, used as the headline for the whole failure."""
        for errors in self.field_errors.values():
            if errors:
                return errors[0]
        return "Validation failed"


# ── public ──────────────────────────────────────────────────────────────


def contains_emoji(message: str) -> bool:
    return EMOJI_RE.search(message) is not None


def extract_emojis(message: str) -> list[str]:
    """Return the unique emojis in *message*, in first-occurrence order."""
    return list(dict.fromkeys(EMOJI_RE.findall(message)))


def extract_emojis_with_positions(message: str) -> list[ExtractedEmoji]:
    """Return every emoji occurrence with its code-point offset."""
    return [
        ExtractedEmoji(character=m.group(0), index=m.start())
        for m in EMOJI_RE.finditer(message)
    ]


def message_length(message: str) -> int:
    """Length in UTF-16 code units, so astral emoji count as two characters."""
    return len(message.encode("utf-16-le")) // 2


def validate_request(raw: Mapping[str, Any]) -> ValidationResult:
    """Check every field and report all violations together.

    Never raises for a mapping input; problems land in ``field_errors``.
    """
    errors: dict[str, list[str]] = {}

    message = raw.get("message")
    if not isinstance(message, str) or not message.strip():
        errors["message"] = ["Message is required"]
        message = None
    else:
        message = message.strip()
        message_errors = _message_errors(message)
        if message_errors:
            errors["message"] = message_errors

    platform = _parse_enum(raw.get("platform"), Platform)
    if platform is None:
        errors["platform"] = [f"Platform must be one of: {', '.join(_PLATFORM_VALUES)}"]

    context = _parse_enum(raw.get("context"), RelationshipContext)
    if context is None:
        errors["context"] = [f"Context must be one of: {', '.join(_CONTEXT_VALUES)}"]

    if errors:
        logger.debug("Validation failed: %s", errors)
        return ValidationResult(field_errors=errors)

    return ValidationResult(
        request=InterpretationRequest(message=message, platform=platform, context=context)
    )


def parse_request_body(body: str | bytes) -> dict[str, Any]:
    """Decode a JSON request body; anything but an object is rejected."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedInputError("Invalid JSON in request body") from exc
    if not isinstance(data, dict):
        raise MalformedInputError("Request body must be a JSON object")
    return data


# ── private ─────────────────────────────────────────────────────────────


def _message_errors(message: str) -> list[str]:
    errors: list[str] = []
    length = message_length(message)
    if length < MIN_MESSAGE_LENGTH:
        errors.append(f"Message must be at least {MIN_MESSAGE_LENGTH} characters")
    elif length > MAX_MESSAGE_LENGTH:
        errors.append(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")
    if not contains_emoji(message):
        errors.append("Message must contain at least one emoji")
    return errors


def _parse_enum(value: Any, enum_cls: type[Platform] | type[RelationshipContext]) -> Any:
    if not isinstance(value, str):
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return None
