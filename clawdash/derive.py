"""
Pure derivation rules: activity status, context usage and display text.

Elapsed times are milliseconds since last activity, or None for an agent or
session that has never been active.
"""

import math

WORKING_THRESHOLD_MS = 5 * 60 * 1000

_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS


def classify_activity(last_active_ms, has_recent_errors=False):
    """Classify as 'working', 'idle' or 'error' from recency and error signal."""
    if has_recent_errors:
        return 'error'
    if last_active_ms is None:
        return 'idle'
    if last_active_ms < WORKING_THRESHOLD_MS:
        return 'working'
    return 'idle'


def round_half_up(value):
    return int(math.floor(value + 0.5))


def percent_used(total, capacity):
    """Percentage of the context window consumed, clamped to 0..100."""
    if not capacity or capacity <= 0:
        return 0
    pct = round_half_up((total or 0) / capacity * 100)
    return max(0, min(100, pct))


def time_ago_text(ms):
    """Human-readable elapsed time: '3d ago', '2h ago', '5m ago', 'just now'."""
    if ms is None or not isinstance(ms, (int, float)) or isinstance(ms, bool):
        return 'Never'
    if not math.isfinite(ms) or ms < 0:
        return 'Never'

    ms = int(ms)
    if ms >= _DAY_MS:
        return f'{ms // _DAY_MS}d ago'
    if ms >= _HOUR_MS:
        return f'{ms // _HOUR_MS}h ago'
    if ms >= _MINUTE_MS:
        return f'{ms // _MINUTE_MS}m ago'
    return 'just now'


def token_count_text(n):
    """Compact token count: '1.2M', '54.2K', '512'."""
    if not n:
        return '0'
    if n >= 1_000_000:
        return f'{n / 1_000_000:.1f}M'
    if n >= 1_000:
        return f'{n / 1_000:.1f}K'
    return str(int(n))
