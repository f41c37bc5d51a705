"""
Aggregation: combines normalized status, health, logs and sessions into the
payloads served by the API.
"""

import logging

from .derive import (
    classify_activity, percent_used, time_ago_text, token_count_text,
)
from .models import AgentRecord, LogSet, SessionRecord, Totals
from .normalize import (
    gateway_reachability, normalize_health, normalize_logs,
    normalize_session_status, normalize_sessions,
)
from .source import ParseError

logger = logging.getLogger(__name__)

OVERVIEW_ERROR_LIMIT = 5
DEFAULT_LOG_LIMIT = 10
MAX_LOG_LIMIT = 100

# Channel statuses that degrade overall health on the health endpoint
_DEGRADED_CHANNEL_STATUSES = ('disconnected', 'error', 'connecting', 'not_configured')


class NotFound(Exception):
    """Requested agent id is absent from the current snapshot."""

    def __init__(self, agent_id):
        super().__init__(f'Agent not found: {agent_id}')
        self.agent_id = agent_id


# ── Agents ──────────────────────────────────────────────────────────────

def agent_record(summary, directory):
    meta = directory.lookup(summary.agent_id)
    return AgentRecord(
        id=summary.agent_id,
        name=meta.name,
        emoji=meta.emoji,
        status=classify_activity(summary.last_active_ms),
        model=summary.model,
        context_tokens=summary.context_tokens,
        input_tokens=summary.input_tokens,
        output_tokens=summary.output_tokens,
        total_tokens=summary.total_tokens,
        percent_used=percent_used(summary.total_tokens, summary.context_tokens),
        session_count=summary.session_count,
        last_active_ms=summary.last_active_ms,
        last_active_text=time_ago_text(summary.last_active_ms),
        total_tokens_text=token_count_text(summary.total_tokens),
    )


def agent_totals(records):
    return Totals(
        agents=len(records),
        active_agents=sum(1 for r in records if r.status == 'working'),
        total_tokens=sum(r.total_tokens for r in records),
        total_sessions=sum(r.session_count for r in records),
    )


def sort_agents(records):
    """Working agents first, then by name (case-insensitive)."""
    return sorted(records, key=lambda r: (r.status != 'working', r.name.casefold()))


def build_agents(status_raw, directory):
    """Agent records sorted for the listing endpoint, plus totals."""
    summaries = normalize_session_status(status_raw)
    records = [agent_record(s, directory) for s in summaries.values()]
    return sort_agents(records), agent_totals(records)


# ── Sessions ────────────────────────────────────────────────────────────

def session_record(summary, directory):
    status = classify_activity(summary.last_active_ms)
    return SessionRecord(
        session_key=summary.session_key,
        agent_id=summary.agent_id,
        agent_name=directory.lookup(summary.agent_id).name if summary.agent_id else 'unknown',
        model=summary.model,
        input_tokens=summary.input_tokens,
        output_tokens=summary.output_tokens,
        total_tokens=summary.total_tokens,
        channel=summary.channel,
        last_active_ms=summary.last_active_ms,
        last_active_text=time_ago_text(summary.last_active_ms),
        status=status,
    )


def _recency_key(record):
    # Never-active sessions sort after everything else
    never = record.last_active_ms is None
    return (never, 0 if never else record.last_active_ms)


def build_sessions(sessions_raw, directory, agent=None, active_only=False):
    """Filtered session records, most recently active first, plus totals."""
    records = []
    for summary in normalize_sessions(sessions_raw):
        if agent and summary.agent_id != agent:
            continue
        record = session_record(summary, directory)
        if active_only and record.status != 'working':
            continue
        records.append(record)
    records.sort(key=_recency_key)

    totals = {
        'sessions': len(records),
        'activeSessions': sum(1 for r in records if r.status == 'working'),
        'totalTokens': sum(r.total_tokens for r in records),
    }
    return records, totals


def build_agent_detail(agent_id, status_raw, sessions_raw, directory):
    """Detail payload for one agent; raises NotFound for an unknown id."""
    summary = normalize_session_status(status_raw).get(agent_id)
    if summary is None:
        raise NotFound(agent_id)

    record = agent_record(summary, directory)
    sessions = [session_record(s, directory)
                for s in normalize_sessions(sessions_raw) if s.agent_id == agent_id]
    return {
        'id': record.id,
        'name': record.name,
        'emoji': record.emoji,
        'status': record.status,
        'model': record.model,
        'contextTokens': record.context_tokens,
        'tokens': {
            'input': record.input_tokens,
            'output': record.output_tokens,
            'total': record.total_tokens,
            'percentUsed': record.percent_used,
        },
        'sessionCount': record.session_count,
        'sessions': [
            {
                'sessionKey': s.session_key,
                'inputTokens': s.input_tokens,
                'outputTokens': s.output_tokens,
                'totalTokens': s.total_tokens,
                'lastActiveMs': s.last_active_ms,
                'lastActiveText': s.last_active_text,
                'channel': s.channel,
                'status': s.status,
            }
            for s in sessions
        ],
        'lastActiveMs': record.last_active_ms,
        'lastActiveText': record.last_active_text,
    }


# ── Health ──────────────────────────────────────────────────────────────

def _settled(name, normalizer, raw, default):
    """Normalize one sub-query result, degrading a malformed payload to ``default``."""
    if raw is None:
        return default
    try:
        return normalizer(raw)
    except ParseError as e:
        logger.warning('Ignoring malformed %s payload: %s', name, e)
        return default


def health_snapshot(health_raw, status_raw):
    reachable, version = gateway_reachability(status_raw)
    if health_raw is not None and not isinstance(health_raw, dict):
        logger.warning('Ignoring malformed health payload: %s', type(health_raw).__name__)
        health_raw = None
    return normalize_health(health_raw, reachable=reachable, version=version)


def build_health(health_raw, status_raw):
    """Gateway and channel health with overall status and traffic lights."""
    snapshot = health_snapshot(health_raw, status_raw)
    channels = snapshot.channels

    overall = 'healthy'
    indicators = {'gateway': 'green', 'channels': 'green', 'errors': 'green'}

    if snapshot.gateway.status != 'running':
        overall = 'critical'
        indicators['gateway'] = 'red'

    if any(c.status in _DEGRADED_CHANNEL_STATUSES for c in channels.values()):
        if overall != 'critical':
            overall = 'degraded'
        indicators['channels'] = 'yellow'
    elif any(c.probe_ok and not c.running for c in channels.values()):
        # Reachable, but the gateway has not started the channel
        indicators['channels'] = 'yellow'

    return {
        'gateway': snapshot.gateway.to_dict(),
        'channels': {name: c.to_dict() for name, c in channels.items()},
        'overall': overall,
        'indicators': indicators,
    }


# ── Logs ────────────────────────────────────────────────────────────────

def clamp_log_limit(value):
    """Parse a ``limit`` query value: default 10, at most 100."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_LOG_LIMIT
    if limit <= 0:
        return DEFAULT_LOG_LIMIT
    return min(limit, MAX_LOG_LIMIT)


def build_logs(logs_raw, limit=DEFAULT_LOG_LIMIT, level='all', agent=None):
    """Filtered, capped log entries plus unfiltered error/warning totals."""
    log_set = normalize_logs(logs_raw)
    selected = []
    for entry in log_set.entries:
        if level and level != 'all' and entry.level != level:
            continue
        if agent and entry.agent != agent:
            continue
        selected.append(entry)
        if len(selected) >= limit:
            break

    return {
        'logs': [e.to_dict() for e in selected],
        'summary': {
            'total': log_set.errors + log_set.warnings,
            'errors': log_set.errors,
            'warnings': log_set.warnings,
        },
    }


# ── Overview ────────────────────────────────────────────────────────────

def overview_health(snapshot):
    """Coarse overview rule: healthy only when every channel is connected."""
    channels = {name: c.status for name, c in snapshot.channels.items()}
    gateway = snapshot.gateway
    if gateway.status == 'running' and all(s == 'connected' for s in channels.values()):
        overall = 'healthy'
    elif gateway.status == 'running':
        overall = 'degraded'
    else:
        overall = 'critical'
    return {
        'gateway': {
            'status': gateway.status,
            'uptime': gateway.uptime,
            'version': gateway.version,
        },
        'channels': channels,
        'overall': overall,
    }


def build_overview(results, directory):
    """Combined dashboard payload from ``fetch_all`` results.

    Any of the four payloads may be None when its query failed.
    """
    status_raw = results.get('status')
    summaries = _settled('status', normalize_session_status, status_raw, {})
    agents = [agent_record(s, directory) for s in summaries.values()]

    snapshot = health_snapshot(results.get('health'), status_raw)

    log_set = _settled('logs', normalize_logs, results.get('logs'), LogSet())
    errors = [e for e in log_set.entries if e.level == 'error']
    logs = [
        {'timestamp': e.timestamp, 'level': e.level, 'message': e.message, 'agent': e.agent}
        for e in errors[:OVERVIEW_ERROR_LIMIT]
    ]

    sessions = _settled('sessions', normalize_sessions, results.get('sessions'), [])
    active = sum(1 for s in sessions if classify_activity(s.last_active_ms) == 'working')

    return {
        'agents': [a.to_dict() for a in agents],
        'health': overview_health(snapshot),
        'logs': logs,
        'sessions': {'total': len(sessions), 'active': active},
        'totals': agent_totals(agents).to_dict(),
    }
