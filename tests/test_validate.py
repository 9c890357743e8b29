"""Unit tests for request validation and emoji extraction."""

import pytest

from emojilens.models import Platform, RelationshipContext
from emojilens.validate import (
    MalformedInputError,
    contains_emoji,
    extract_emojis,
    extract_emojis_with_positions,
    message_length,
    parse_request_body,
    validate_request,
)

WAVE = "\U0001f44b"
THUMBS_MEDIUM = "\U0001f44d\U0001f3fd"
FAMILY = "\U0001f468\u200d\U0001f469\u200d\U0001f467"
US_FLAG = "\U0001f1fa\U0001f1f8"
KEYCAP_ONE = "1\ufe0f\u20e3"
RED_HEART = "\u2764\ufe0f"


def _raw(message: str = f"Hey there! {WAVE} how are you?", **overrides: object) -> dict:
    raw = {"message": message, "platform": "IMESSAGE", "context": "FRIEND"}
    raw.update(overrides)
    return raw


class TestMessageLength:
    def test_ascii_counts_characters(self) -> None:
        assert message_length("hello") == 5

    def test_astral_emoji_counts_two(self) -> None:
        assert message_length(WAVE) == 2

    def test_bmp_emoji_counts_one_per_code_point(self) -> None:
        assert message_length(RED_HEART) == 2


class TestValidateMessage:
    def test_valid_request(self) -> None:
        result = validate_request(_raw())
        assert result.ok
        assert result.request is not None
        assert result.request.platform is Platform.IMESSAGE
        assert result.request.context is RelationshipContext.FRIEND
        assert result.field_errors == {}

    def test_message_is_trimmed(self) -> None:
        result = validate_request(_raw(f"   Hey there! {WAVE}   "))
        assert result.request is not None
        assert result.request.message == f"Hey there! {WAVE}"

    def test_too_short(self) -> None:
        result = validate_request(_raw(f"short {WAVE}"))
        assert not result.ok
        assert result.field_errors["message"] == ["Message must be at least 10 characters"]

    def test_padding_does_not_count_towards_length(self) -> None:
        result = validate_request(_raw(f"     hi {WAVE}     "))
        assert "Message must be at least 10 characters" in result.field_errors["message"]

    def test_exactly_max_length_in_utf16_units(self) -> None:
        result = validate_request(_raw(WAVE * 500))
        assert result.ok

    def test_too_long_in_utf16_units(self) -> None:
        # 1000 code points but 1001 UTF-16 code units.
        result = validate_request(_raw("a" * 999 + WAVE))
        assert result.field_errors["message"] == ["Message must be at most 1000 characters"]

    def test_emoji_required(self) -> None:
        result = validate_request(_raw("no emoji here at all"))
        assert result.field_errors["message"] == ["Message must contain at least one emoji"]

    def test_emoji_required_regardless_of_length(self) -> None:
        result = validate_request(_raw("x" * 2000))
        assert "Message must contain at least one emoji" in result.field_errors["message"]

    def test_missing_message(self) -> None:
        raw = _raw()
        del raw["message"]
        result = validate_request(raw)
        assert result.field_errors["message"] == ["Message is required"]

    def test_blank_message(self) -> None:
        result = validate_request(_raw("    "))
        assert result.field_errors["message"] == ["Message is required"]

    def test_non_string_message(self) -> None:
        result = validate_request(_raw(42))
        assert result.field_errors["message"] == ["Message is required"]

    @pytest.mark.parametrize("platform", [p.value for p in Platform])
    def test_validity_independent_of_platform(self, platform: str) -> None:
        assert validate_request(_raw(platform=platform)).ok


class TestValidateEnums:
    def test_unknown_platform(self) -> None:
        result = validate_request(_raw(platform="MYSPACE"))
        assert list(result.field_errors) == ["platform"]
        assert result.field_errors["platform"][0].startswith("Platform must be one of: IMESSAGE")

    def test_platform_is_case_sensitive(self) -> None:
        assert not validate_request(_raw(platform="imessage")).ok

    def test_unknown_context(self) -> None:
        result = validate_request(_raw(context="BOSS"))
        assert list(result.field_errors) == ["context"]
        assert "ROMANTIC_PARTNER" in result.field_errors["context"][0]

    def test_all_errors_reported_together(self) -> None:
        result = validate_request({"message": "hi", "platform": "MYSPACE"})
        assert set(result.field_errors) == {"message", "platform", "context"}
        assert result.field_errors["message"] == [
            "Message must be at least 10 characters",
            "Message must contain at least one emoji",
        ]
        assert result.message == "Message must be at least 10 characters"


class TestExtractEmojis:
    def test_plain_text_has_no_emoji(self) -> None:
        assert not contains_emoji("call me at 555 1234 #tbt")

    def test_single_emoji(self) -> None:
        assert extract_emojis(f"Hey {WAVE}") == [WAVE]

    def test_sequences_stay_whole(self) -> None:
        message = f"{THUMBS_MEDIUM} {FAMILY} {US_FLAG} {KEYCAP_ONE} {RED_HEART}"
        assert extract_emojis(message) == [THUMBS_MEDIUM, FAMILY, US_FLAG, KEYCAP_ONE, RED_HEART]

    def test_unique_in_first_occurrence_order(self) -> None:
        message = f"{US_FLAG} nice {WAVE} {US_FLAG} again {WAVE}"
        assert extract_emojis(message) == [US_FLAG, WAVE]

    def test_positions_keep_duplicates(self) -> None:
        found = extract_emojis_with_positions(f"ab{WAVE}cd{WAVE}")
        assert [(e.character, e.index) for e in found] == [(WAVE, 2), (WAVE, 5)]

    @pytest.mark.parametrize(
        "text", ["\u2776 first item here", "\u2713 done", "\u2780 \u27a4 next", "\u2606 rated"]
    )
    def test_dingbats_are_not_emoji(self, text: str) -> None:
        assert not contains_emoji(text)

    @pytest.mark.parametrize(
        "symbol", ["\u2705", "\u2614", "\u2728", "\u274c", "\u27bf", "\u2600\ufe0f"]
    )
    def test_symbol_block_emoji(self, symbol: str) -> None:
        assert extract_emojis(f"done {symbol} today") == [symbol]


class TestParseRequestBody:
    def test_object(self) -> None:
        assert parse_request_body('{"message": "x"}') == {"message": "x"}

    def test_invalid_json(self) -> None:
        with pytest.raises(MalformedInputError, match="Invalid JSON"):
            parse_request_body("not json")

    def test_non_object(self) -> None:
        with pytest.raises(MalformedInputError, match="JSON object"):
            parse_request_body("[1, 2]")
