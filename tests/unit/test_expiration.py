"""Unit tests for TTL parsing and expiry resolution."""

from datetime import UTC, datetime, timedelta

import pytest

from analytics_gatekeeper.core.expiration import (
    ExpirationParseError,
    parse_duration,
    resolve,
)

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


class TestParseDuration:
    """Tests for parse_duration."""

    @pytest.mark.parametrize(
        ("spec", "expected"),
        [
            ("30d", timedelta(days=30)),
            ("1d", timedelta(days=1)),
            ("1y", timedelta(days=365)),
            ("2y", timedelta(days=730)),
            ("12h", timedelta(hours=12)),
            ("1h30m", timedelta(hours=1, minutes=30)),
            ("90s", timedelta(seconds=90)),
            ("1.5h", timedelta(minutes=90)),
            ("500ms", timedelta(milliseconds=500)),
        ],
    )
    def test_valid_specs(self, spec: str, expected: timedelta) -> None:
        """Known forms parse to the expected duration."""
        assert parse_duration(spec) == expected

    @pytest.mark.parametrize("spec", ["abc", "d", "y", "xd", "1.5d", "-1d", "10", "5w", "1h30"])
    def test_invalid_specs(self, spec: str) -> None:
        """Anything outside the known forms is rejected."""
        with pytest.raises(ExpirationParseError):
            parse_duration(spec)

    @pytest.mark.parametrize("spec", ["99999999999d", "9999999999999999h", "9" * 5000 + "d"])
    def test_out_of_range_rejected(self, spec: str) -> None:
        """Magnitudes too large for a timedelta are parse errors."""
        with pytest.raises(ExpirationParseError, match="out of range"):
            parse_duration(spec)

    @pytest.mark.parametrize("spec", ["0d", "0y", "0h", "0s"])
    def test_zero_duration_rejected(self, spec: str) -> None:
        """Zero-length durations are rejected."""
        with pytest.raises(ExpirationParseError, match="positive"):
            parse_duration(spec)

    def test_error_is_value_error(self) -> None:
        """Parse errors are ValueErrors."""
        with pytest.raises(ValueError):
            parse_duration("bogus")


class TestResolve:
    """Tests for resolve."""

    def test_none_never_expires(self) -> None:
        """None means no expiration."""
        assert resolve(None, NOW) is None

    def test_blank_never_expires(self) -> None:
        """Empty or whitespace means no expiration."""
        assert resolve("", NOW) is None
        assert resolve("   ", NOW) is None

    def test_days_are_added_to_now(self) -> None:
        """Expiry is now plus the duration."""
        assert resolve("30d", NOW) == NOW + timedelta(days=30)

    def test_year_is_365_days(self) -> None:
        """Years ignore leap days."""
        leap_start = datetime(2024, 1, 1, tzinfo=UTC)
        assert resolve("1y", leap_start) == datetime(2024, 12, 31, tzinfo=UTC)

    def test_surrounding_whitespace_ignored(self) -> None:
        """Whitespace around the spec is stripped."""
        assert resolve(" 12h ", NOW) == NOW + timedelta(hours=12)

    @pytest.mark.parametrize("spec", ["99999y", "99999999999d", "9999999999999999h"])
    def test_expiry_past_max_date_rejected(self, spec: str) -> None:
        """An expiry beyond the supported date range is a parse error."""
        with pytest.raises(ExpirationParseError, match="out of range"):
            resolve(spec, NOW)

    def test_unparseable_raises(self) -> None:
        """Unparseable spec raises."""
        with pytest.raises(ExpirationParseError):
            resolve("forever", NOW)
