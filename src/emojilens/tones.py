"""Response-tone suggestions derived from interpretation metrics."""

from __future__ import annotations

import logging
import math

from emojilens.models import (
    InterpretationMetrics,
    OverallTone,
    SuggestedResponseTone,
    ToneInfo,
    ToneKind,
)

logger = logging.getLogger(__name__)

# ── Tone catalogue ─────────────────────────────────────────────────────────
TONE_INFO: dict[ToneKind, ToneInfo] = {
    ToneKind.DIRECT: ToneInfo(
        kind=ToneKind.DIRECT,
        label="Direct & Assertive",
        description=(
            "Clear, straightforward communication that addresses the message "
            "directly without ambiguity."
        ),
        icon="\U0001f4aa",
    ),
    ToneKind.PLAYFUL: ToneInfo(
        kind=ToneKind.PLAYFUL,
        label="Playful & Light",
        description=(
            "A fun, lighthearted approach that uses humor or emojis to keep "
            "the conversation casual."
        ),
        icon="\U0001f604",
    ),
    ToneKind.CLARIFYING: ToneInfo(
        kind=ToneKind.CLARIFYING,
        label="Clarifying & Questioning",
        description=(
            "An approach that seeks to understand better by asking questions "
            "or requesting clarification."
        ),
        icon="\U0001f914",
    ),
    ToneKind.NEUTRAL: ToneInfo(
        kind=ToneKind.NEUTRAL,
        label="Neutral & Professional",
        description=(
            "A balanced, professional tone that maintains composure and avoids "
            "emotional escalation."
        ),
        icon="\U0001f91d",
    ),
    ToneKind.MATCHING: ToneInfo(
        kind=ToneKind.MATCHING,
        label="Matching Energy",
        description=(
            "A response that mirrors the sender's tone and energy level to "
            "build rapport and connection."
        ),
        icon="\U0001fa9e",
    ),
}

# ── Weights (tuneable) ─────────────────────────────────────────────────────
_BASE_WEIGHT = 50.0
_HIGH_THRESHOLD = 50  # sarcasm / passive-aggression above this counts as "high"
_LOW_CONFIDENCE = 50
_SUGGESTION_COUNT = 3

_TONE_ADJUSTMENTS: dict[OverallTone, dict[ToneKind, float]] = {
    OverallTone.POSITIVE: {ToneKind.PLAYFUL: 20, ToneKind.MATCHING: 15, ToneKind.NEUTRAL: -10},
    OverallTone.NEGATIVE: {
        ToneKind.DIRECT: 15,
        ToneKind.CLARIFYING: 20,
        ToneKind.NEUTRAL: 15,
        ToneKind.PLAYFUL: -20,
    },
    OverallTone.NEUTRAL: {ToneKind.NEUTRAL: 15, ToneKind.CLARIFYING: 10},
}
_SARCASM_ADJUSTMENT: dict[ToneKind, float] = {
    ToneKind.CLARIFYING: 25,
    ToneKind.DIRECT: 15,
    ToneKind.PLAYFUL: -10,
    ToneKind.MATCHING: -10,
}
_PASSIVE_AGGRESSION_ADJUSTMENT: dict[ToneKind, float] = {
    ToneKind.DIRECT: 20,
    ToneKind.CLARIFYING: 20,
    ToneKind.NEUTRAL: 10,
    ToneKind.PLAYFUL: -25,
    ToneKind.MATCHING: -15,
}
_LOW_CONFIDENCE_ADJUSTMENT: dict[ToneKind, float] = {
    ToneKind.CLARIFYING: 30,
    ToneKind.DIRECT: -10,
}

# ── Example phrasings keyed by (tone, overall tone) ────────────────────────
_EXAMPLES: dict[ToneKind, dict[OverallTone, list[str]]] = {
    ToneKind.DIRECT: {
        OverallTone.POSITIVE: [
            "Thanks! I appreciate that. Here's what I'm thinking...",
            "I hear you! Let me be direct about this - I'd prefer to...",
        ],
        OverallTone.NEUTRAL: [
            "I want to be clear about this: [your point]",
            "Here's my honest take on this: [your perspective]",
        ],
        OverallTone.NEGATIVE: [
            "I understand you're frustrated. Let me address this directly...",
            "I hear your concern. Here's what I think we should do...",
        ],
    },
    ToneKind.PLAYFUL: {
        OverallTone.POSITIVE: [
            "Haha, love it! \U0001f604 Speaking of which...",
            "You're too much! \U0001f602 But seriously though...",
        ],
        OverallTone.NEUTRAL: [
            "Well well well \U0001f440 Let's make this fun...",
            "Ooh, interesting! \U0001f914 Here's a thought...",
        ],
        OverallTone.NEGATIVE: [
            "Okay okay, I see where this is going \U0001f605 How about we...",
            "Alright, let's not spiral here \U0001f643 What if we tried...",
        ],
    },
    ToneKind.CLARIFYING: {
        OverallTone.POSITIVE: [
            "That sounds great! Just to make sure I understand - you mean...?",
            "Love this idea! Quick question though - when you say X, do you mean...?",
        ],
        OverallTone.NEUTRAL: [
            "Interesting point. Can you tell me more about what you mean by...?",
            "I want to make sure I'm following - are you saying that...?",
        ],
        OverallTone.NEGATIVE: [
            "I want to understand your perspective better. "
            "What specifically about X is concerning you?",
            "Help me understand - when you mention X, what's the main issue you're seeing?",
        ],
    },
    ToneKind.NEUTRAL: {
        OverallTone.POSITIVE: [
            "Thanks for sharing that. I think a good next step would be...",
            "Appreciated. Moving forward, I suggest we...",
        ],
        OverallTone.NEUTRAL: [
            "Understood. Here are my thoughts on this...",
            "Thanks for the update. From my perspective...",
        ],
        OverallTone.NEGATIVE: [
            "I understand your position. Let's work through this together...",
            "Thank you for expressing that. Here's what I propose...",
        ],
    },
    ToneKind.MATCHING: {
        OverallTone.POSITIVE: [
            "YES! \U0001f389 I'm so here for this! Let's...",
            "Omg same energy! \u2728 I was literally just thinking...",
        ],
        OverallTone.NEUTRAL: [
            "Yeah, I can see that. My take is...",
            "Makes sense. On my end, I'd say...",
        ],
        OverallTone.NEGATIVE: [
            "I feel you. It's frustrating when... Here's what I think could help...",
            "Totally get it. The way I see it...",
        ],
    },
}


def is_valid_tone_kind(value: str) -> bool:
    try:
        ToneKind(value)
    except ValueError:
        return False
    return True


def calculate_tone_weights(metrics: InterpretationMetrics) -> dict[ToneKind, float]:
    """Score every tone kind; weights are floored at zero."""
    weights = {tone: _BASE_WEIGHT for tone in ToneKind}

    adjustments = [_TONE_ADJUSTMENTS[metrics.overall_tone]]
    if metrics.sarcasm_probability > _HIGH_THRESHOLD:
        adjustments.append(_SARCASM_ADJUSTMENT)
    if metrics.passive_aggression_probability > _HIGH_THRESHOLD:
        adjustments.append(_PASSIVE_AGGRESSION_ADJUSTMENT)
    if metrics.confidence < _LOW_CONFIDENCE:
        adjustments.append(_LOW_CONFIDENCE_ADJUSTMENT)

    for adjustment in adjustments:
        for tone, delta in adjustment.items():
            weights[tone] += delta

    return {tone: max(0.0, weight) for tone, weight in weights.items()}


def select_top_tones(
    weights: dict[ToneKind, float], count: int = _SUGGESTION_COUNT
) -> list[ToneKind]:
    """Highest weights first; ties keep declaration order."""
    ordered = sorted(ToneKind, key=lambda tone: -weights[tone])
    return ordered[:count]


def calculate_tone_confidence(weight: float, max_weight: float) -> int:
    """Map a weight onto 50-100 relative to the strongest tone."""
    if max_weight == 0:
        return 50
    normalized = (weight / max_weight) * 50 + 50
    # Half-up rounding, not Python's banker's rounding.
    return int(math.floor(min(100.0, max(0.0, normalized)) + 0.5))


def generate_tone_reasoning(tone: ToneKind, metrics: InterpretationMetrics) -> str:
    sarcastic = metrics.sarcasm_probability > _HIGH_THRESHOLD
    passive_aggressive = metrics.passive_aggression_probability > _HIGH_THRESHOLD
    overall = metrics.overall_tone

    if tone is ToneKind.DIRECT:
        if passive_aggressive:
            return (
                "Given the potential passive-aggressive undertones, a direct response "
                "can help address the underlying message clearly."
            )
        if sarcastic:
            return (
                "The sarcasm in the message suggests a direct approach may be effective "
                "to cut through any ambiguity."
            )
        return (
            "A straightforward response ensures your message is understood without "
            "room for misinterpretation."
        )

    if tone is ToneKind.PLAYFUL:
        if overall is OverallTone.POSITIVE:
            return (
                "The positive tone invites a playful response that can strengthen the "
                "connection and keep things light."
            )
        return (
            "A touch of lightheartedness could help ease any tension and redirect the "
            "conversation positively."
        )

    if tone is ToneKind.CLARIFYING:
        if metrics.confidence < _LOW_CONFIDENCE:
            return (
                "The message has some ambiguity, so asking clarifying questions can help "
                "ensure you understand correctly."
            )
        if sarcastic:
            return (
                "Given the potential sarcasm, seeking clarification can help confirm the "
                "true intent behind the message."
            )
        if passive_aggressive:
            return (
                "Asking clarifying questions can bring any underlying concerns to the "
                "surface for direct discussion."
            )
        return (
            "Seeking clarification shows engagement and ensures mutual understanding "
            "in the conversation."
        )

    if tone is ToneKind.NEUTRAL:
        if overall is OverallTone.NEGATIVE:
            return (
                "A neutral, professional tone helps de-escalate tension and keeps the "
                "conversation productive."
            )
        if metrics.passive_aggression_probability > 30:
            return (
                "Maintaining neutrality prevents escalation and demonstrates emotional "
                "maturity in the exchange."
            )
        return (
            "A balanced response maintains professionalism while leaving room for the "
            "conversation to develop."
        )

    if tone is ToneKind.MATCHING:
        if overall is OverallTone.POSITIVE and metrics.confidence > 70:
            return (
                "Matching the sender's positive energy builds rapport and reinforces the "
                "friendly dynamic."
            )
        if overall is OverallTone.NEUTRAL:
            return (
                "Mirroring the neutral tone maintains consistency and shows you understand "
                "the communication style."
            )
        return "Reflecting a similar energy level can help the sender feel heard and understood."

    return TONE_INFO[tone].description


def generate_tone_examples(tone: ToneKind, overall_tone: OverallTone) -> list[str]:
    by_tone = _EXAMPLES[tone]
    return list(by_tone.get(overall_tone) or by_tone[OverallTone.NEUTRAL])


def suggest_tones(metrics: InterpretationMetrics) -> list[SuggestedResponseTone]:
    """Return the top response tones, most confident first."""
    weights = calculate_tone_weights(metrics)
    top = select_top_tones(weights)
    max_weight = max(weights.values())

    suggestions = [
        SuggestedResponseTone(
            tone=tone,
            reasoning=generate_tone_reasoning(tone, metrics),
            confidence=calculate_tone_confidence(weights[tone], max_weight),
            examples=generate_tone_examples(tone, metrics.overall_tone),
        )
        for tone in top
        if weights[tone] > 0
    ]
    # Stable sort: equal confidence keeps the weight order from select_top_tones.
    suggestions.sort(key=lambda s: -s.confidence)
    logger.debug(
        "Suggested tones: %s", ", ".join(f"{s.tone.value}={s.confidence}" for s in suggestions)
    )
    return suggestions
