"""Domain models used across the interpretation pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    """Messaging platform the message was received on."""

    IMESSAGE = "IMESSAGE"
    INSTAGRAM = "INSTAGRAM"
    TIKTOK = "TIKTOK"
    WHATSAPP = "WHATSAPP"
    SLACK = "SLACK"
    DISCORD = "DISCORD"
    TWITTER = "TWITTER"
    OTHER = "OTHER"


class RelationshipContext(str, Enum):
    """Who sent the message, relative to the reader."""

    ROMANTIC_PARTNER = "ROMANTIC_PARTNER"
    FRIEND = "FRIEND"
    FAMILY = "FAMILY"
    COWORKER = "COWORKER"
    ACQUAINTANCE = "ACQUAINTANCE"
    STRANGER = "STRANGER"


class OverallTone(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class ToneKind(str, Enum):
    """Response-style categories. Declaration order is the ranking tiebreak."""

    DIRECT = "DIRECT"
    PLAYFUL = "PLAYFUL"
    CLARIFYING = "CLARIFYING"
    NEUTRAL = "NEUTRAL"
    MATCHING = "MATCHING"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SessionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    QUOTA_CHECKING = "quota_checking"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERRORED = "errored"
    CANCELLED = "cancelled"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    QUOTA_EXCEEDED = "quota_exceeded"
    TRANSPORT = "transport"
    STREAM = "stream"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"


TERMINAL_STATES = frozenset(
    {SessionState.COMPLETE, SessionState.ERRORED, SessionState.CANCELLED}
)
RETRYABLE_ERRORS = frozenset(
    {
        ErrorKind.TRANSPORT,
        ErrorKind.STREAM,
        ErrorKind.TIMEOUT,
        ErrorKind.MALFORMED_RESPONSE,
    }
)


# ── Requests & results ─────────────────────────────────────────────────────


class InterpretationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    platform: Platform
    context: RelationshipContext


class ExtractedEmoji(BaseModel):
    character: str
    index: int  # offset into the message, in code points


class InterpretationMetrics(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sarcasm_probability: float = Field(..., ge=0, le=100, alias="sarcasmProbability")
    passive_aggression_probability: float = Field(
        ..., ge=0, le=100, alias="passiveAggressionProbability"
    )
    overall_tone: OverallTone = Field(..., alias="overallTone")
    confidence: float = Field(..., ge=0, le=100)


class DetectedEmoji(BaseModel):
    character: str
    meaning: str
    slug: str | None = None


class RedFlag(BaseModel):
    type: str
    description: str
    severity: Severity


class InterpretationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    message: str
    emojis: list[DetectedEmoji] = Field(default_factory=list)
    interpretation: str
    metrics: InterpretationMetrics
    red_flags: list[RedFlag] = Field(default_factory=list, alias="redFlags")
    timestamp: datetime
    placeholder: bool = False


# ── Tone suggestions ───────────────────────────────────────────────────────


class ToneInfo(BaseModel):
    kind: ToneKind
    label: str
    description: str
    icon: str


class SuggestedResponseTone(BaseModel):
    tone: ToneKind
    reasoning: str
    confidence: int = Field(..., ge=0, le=100)
    examples: list[str] = Field(default_factory=list)


# ── Quota ──────────────────────────────────────────────────────────────────


class QuotaRecord(BaseModel):
    """Persisted usage for one calendar day."""

    count: int = Field(0, ge=0)
    date: str


class QuotaCheck(BaseModel):
    allowed: bool
    remaining: int
    reset_at: datetime


class QuotaSnapshot(BaseModel):
    remaining: int
    max_uses: int
    reset_at: datetime


# ── Session ────────────────────────────────────────────────────────────────


class SessionError(BaseModel):
    kind: ErrorKind
    message: str
    field_errors: dict[str, list[str]] = Field(default_factory=dict)
    reset_at: datetime | None = None
    reset_in: str | None = None  # human countdown, quota errors only

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_ERRORS


class StreamingSession(BaseModel):
    state: SessionState = SessionState.IDLE
    accumulated_text: str = ""
    error: SessionError | None = None
    started_at: datetime | None = None
    advisory: bool = False  # "taking longer than expected"

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES
