"""
Tests for the credential codec: every legacy read form, the canonical write
form, and lenient handling of malformed entries.
"""

import pytest

from connectors.codec import (
    KeyPair,
    decode,
    decode_lenient,
    encode,
    parse_key_lines,
    replace_values,
    set_pair,
    to_mapping,
    validate_credential,
)
from connectors.errors import ValidationError


class TestDecodeForms:
    def test_json_array_text(self):
        assert decode('["a=1","b=2"]') == [("a", "1"), ("b", "2")]

    def test_set_literal_text(self):
        assert decode('{"a=1","b=2"}') == [("a", "1"), ("b", "2")]

    def test_set_literal_without_quotes(self):
        assert decode("{a=1, b=2}") == [("a", "1"), ("b", "2")]

    def test_native_list(self):
        assert decode(["a=1", "b=2"]) == [("a", "1"), ("b", "2")]

    def test_bare_single_pair(self):
        assert decode("a=1") == [("a", "1")]

    @pytest.mark.parametrize("raw", ["", "   ", None, "{}", "[]"])
    def test_empty_inputs(self, raw):
        assert decode(raw) == []

    def test_splits_on_first_equals_only(self):
        # Base64 padding inside a token value must survive
        assert decode(["token=abc=="]) == [("token", "abc==")]

    def test_trims_whitespace(self):
        assert decode(['  access_token = xyz  ']) == [("access_token", "xyz")]

    def test_pairs_are_key_pairs(self):
        pair = decode("a=1")[0]
        assert isinstance(pair, KeyPair)
        assert pair.key == "a" and pair.value == "1"


class TestLenientDecode:
    def test_entry_without_equals_is_dropped(self):
        result = decode_lenient('{"novaluehere","b=2"}')
        assert result.pairs == [("b", "2")]
        assert result.skipped == ["novaluehere"]

    def test_mixed_validity_json_array(self):
        result = decode_lenient('["a=1","=orphan","empty=","c=3", 42]')
        assert result.pairs == [("a", "1"), ("c", "3")]
        assert result.skipped == ["=orphan", "empty=", 42]

    def test_bare_text_without_equals(self):
        result = decode_lenient("novaluehere")
        assert result.pairs == []
        assert result.skipped == ["novaluehere"]

    def test_bare_text_with_several_equals_is_not_a_pair(self):
        assert decode("a=1 b=2") == []

    def test_unsupported_type_yields_empty(self):
        result = decode_lenient(12345)
        assert result.pairs == []
        assert result.skipped == []

    def test_decode_never_raises(self):
        assert decode(object()) == []


class TestEncode:
    def test_canonical_set_literal(self):
        assert encode([KeyPair("sheet_tab", "Tab1"), KeyPair("access_token", "abc")]) == (
            '{"sheet_tab=Tab1","access_token=abc"}'
        )

    def test_empty(self):
        assert encode([]) == "{}"

    def test_accepts_plain_tuples(self):
        assert encode([("a", "1")]) == '{"a=1"}'

    @pytest.mark.parametrize(
        "pairs",
        [
            [("a", "1")],
            [("access_token", "ya29.A0ARrdaM"), ("refresh_token", "1//0gLx"), ("expires_in", "3599")],
            [("dup", "1"), ("dup", "2")],
        ],
    )
    def test_round_trip(self, pairs):
        assert decode(encode(pairs)) == pairs


class TestPairHelpers:
    def test_to_mapping_last_write_wins(self):
        assert to_mapping(decode('{"a=1","a=2"}')) == {"a": "2"}

    def test_set_pair_replaces_every_occurrence(self):
        pairs = decode('{"sheet_tab=Tab1","access_token=abc","sheet_tab=Old"}')
        assert set_pair(pairs, "sheet_tab", "Tab2") == [("access_token", "abc"), ("sheet_tab", "Tab2")]

    def test_replace_values_keeps_order(self):
        pairs = decode('{"api_key=old","region=eu"}')
        assert replace_values(pairs, {"api_key": " new "}) == [("api_key", "new"), ("region", "eu")]

    def test_replace_values_rejects_new_keys(self):
        with pytest.raises(ValidationError, match="Unknown"):
            replace_values(decode("api_key=old"), {"renamed": "x"})

    def test_replace_values_rejects_empty(self):
        with pytest.raises(ValidationError, match="Empty"):
            replace_values(decode("api_key=old"), {"api_key": "  "})


class TestValidateCredential:
    def test_valid(self):
        validate_credential(decode('{"access_token=a","refresh_token=r","expires_in=3599"}'))

    def test_missing_access_token(self):
        with pytest.raises(ValidationError, match="access_token"):
            validate_credential(decode('{"refresh_token=r"}'))

    def test_non_numeric_expiry(self):
        with pytest.raises(ValidationError, match="expires_in"):
            validate_credential(decode('{"access_token=a","expires_in=soon"}'))


class TestParseKeyLines:
    def test_newline_separated(self):
        assert parse_key_lines("api_key=abc\n\n region=eu \n") == ["api_key=abc", "region=eu"]

    def test_bracketed(self):
        assert parse_key_lines('["api_key=abc", "region=eu"]') == ["api_key=abc", "region=eu"]

    def test_rejects_malformed_line(self):
        with pytest.raises(ValidationError):
            parse_key_lines("api_key=abc\nbroken")


class TestEncodeRejectsUnreadableText:
    @pytest.mark.parametrize(
        "pair",
        [
            ("sheet_tab", "Sales, Q1"),
            ("sheet_tab", 'T","access_token=evil'),
            ("api=key", "x"),
            ('na"me', "x"),
        ],
    )
    def test_rejected(self, pair):
        with pytest.raises(ValidationError):
            encode([pair])

    def test_equals_in_value_is_fine(self):
        assert decode(encode([("token", "abc==")])) == [("token", "abc==")]

    def test_replace_values_rejects_separator(self):
        with pytest.raises(ValidationError):
            replace_values(decode("api_key=old"), {"api_key": "a,b"})
