"""
Tests for check-string canonicalization.
"""

import pytest

from service_auth.app.initdata.canonical import (
    MalformedCredentialError,
    build_check_string,
    parse_credential,
)


class TestParseCredential:
    """Test cases for parse_credential."""

    def test_decodes_pairs_in_order(self):
        """Test percent-decoding keeps field order."""
        pairs = parse_credential("b=2&a=%7B%22id%22%3A42%7D&hash=abc")

        assert pairs == [("b", "2"), ("a", '{"id":42}'), ("hash", "abc")]

    def test_plus_decodes_to_space(self):
        """Test form-encoded spaces."""
        assert parse_credential("query_id=hello+world") == [("query_id", "hello world")]

    def test_keeps_blank_values(self):
        """Test empty values survive parsing."""
        assert parse_credential("start_param=&hash=x") == [("start_param", ""), ("hash", "x")]

    @pytest.mark.parametrize("raw", ["", "no-equals-sign", "a=1&&b=2"])
    def test_rejects_unparsable_input(self, raw):
        """Test malformed query strings."""
        with pytest.raises(MalformedCredentialError):
            parse_credential(raw)

    def test_error_does_not_echo_input(self):
        """Test the parse error carries a fixed reason, not the credential."""
        with pytest.raises(MalformedCredentialError) as exc_info:
            parse_credential("header.payload.signature")

        assert str(exc_info.value) == "invalid query syntax"

    def test_rejects_duplicate_keys(self):
        """Test a repeated field is ambiguous and rejected."""
        with pytest.raises(MalformedCredentialError, match="duplicate"):
            parse_credential("auth_date=1&auth_date=2&hash=x")


class TestBuildCheckString:
    """Test cases for build_check_string."""

    def test_sorted_and_newline_joined(self):
        """Test fields are sorted by key and joined without a trailing newline."""
        check_string = build_check_string({"user": "u", "auth_date": "1", "query_id": "q"})

        assert check_string == "auth_date=1\nquery_id=q\nuser=u"

    def test_excludes_signature_field(self):
        """Test the hash field never takes part in the signed string."""
        check_string = build_check_string([("hash", "deadbeef"), ("auth_date", "1")])

        assert check_string == "auth_date=1"

    def test_order_independent(self):
        """Test any permutation of the same pairs yields the same string."""
        pairs = [("c", "3"), ("a", "1"), ("b", "2"), ("hash", "h")]

        assert build_check_string(pairs) == build_check_string(list(reversed(pairs)))
        assert build_check_string(pairs) == build_check_string(dict(pairs))

    def test_sorts_by_code_point(self):
        """Test uppercase sorts before lowercase and the underscore sits between."""
        check_string = build_check_string([("b", "1"), ("_", "2"), ("B", "3")])

        assert check_string.split("\n") == ["B=3", "_=2", "b=1"]

    def test_values_kept_verbatim(self):
        """Test decoded values, including newlines and '=', are not re-encoded."""
        check_string = build_check_string({"a": "x=y", "b": "line1\nline2"})

        assert check_string == "a=x=y\nb=line1\nline2"

    def test_empty_input(self):
        """Test no fields produce an empty string."""
        assert build_check_string([]) == ""
        assert build_check_string({"hash": "only"}) == ""

    def test_custom_signature_field(self):
        """Test a different signature field name can be excluded."""
        assert build_check_string({"sig": "x", "a": "1"}, signature_field="sig") == "a=1"
