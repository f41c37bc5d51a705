"""
Tests for the pure derivation rules.
"""
import math

import pytest

from clawdash.derive import (
    classify_activity, percent_used, time_ago_text, token_count_text,
)


class TestClassifyActivity:
    def test_boundary_is_exclusive(self):
        assert classify_activity(299_999) == "working"
        assert classify_activity(300_000) == "idle"

    def test_recent_activity_is_working(self):
        assert classify_activity(0) == "working"
        assert classify_activity(132_700) == "working"

    def test_never_active_is_idle(self):
        assert classify_activity(None) == "idle"

    def test_errors_override_recency(self):
        assert classify_activity(1_000, has_recent_errors=True) == "error"
        assert classify_activity(None, has_recent_errors=True) == "error"


class TestPercentUsed:
    def test_scenario_a(self):
        assert percent_used(54202, 272000) == 20

    def test_zero_or_negative_capacity(self):
        assert percent_used(500, 0) == 0
        assert percent_used(500, -10) == 0

    def test_clamped_to_100(self):
        assert percent_used(500_000, 204_800) == 100

    def test_rounds_half_up(self):
        assert percent_used(1, 8) == 13  # 12.5%
        assert percent_used(3, 8) == 38  # 37.5%

    def test_monotonic_and_bounded(self):
        capacity = 204_800
        previous = 0
        for total in range(0, 300_000, 997):
            pct = percent_used(total, capacity)
            assert 0 <= pct <= 100
            assert pct >= previous
            previous = pct


class TestTimeAgoText:
    @pytest.mark.parametrize("ms", [None, -5, math.nan, math.inf, -math.inf])
    def test_never(self, ms):
        assert time_ago_text(ms) == "Never"

    @pytest.mark.parametrize("ms, expected", [
        (0, "just now"),
        (59_999, "just now"),
        (60_000, "1m ago"),
        (3_599_999, "59m ago"),
        (3_600_000, "1h ago"),
        (86_399_999, "23h ago"),
        (86_400_000, "1d ago"),
        (330_869_276, "3d ago"),
    ])
    def test_buckets(self, ms, expected):
        assert time_ago_text(ms) == expected


class TestTokenCountText:
    @pytest.mark.parametrize("n, expected", [
        (0, "0"),
        (None, "0"),
        (999, "999"),
        (1_000, "1.0K"),
        (54_202, "54.2K"),
        (1_000_000, "1.0M"),
        (2_500_000, "2.5M"),
    ])
    def test_formats(self, n, expected):
        assert token_count_text(n) == expected
