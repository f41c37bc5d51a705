"""
Normalization of raw openclaw CLI payloads into stable records.

The CLI has emitted several shapes over time: ``sessions.byAgent`` as either a
mapping or a list, channels as bare strings or probe objects, logs as a batch
object or an NDJSON stream. Every shape is decoded here, once.
"""

import json
import math

from .models import (
    DEFAULT_CONTEXT_TOKENS, DEFAULT_MODEL,
    AgentSummary, ChannelState, GatewayState, HealthSnapshot, LogEntry, LogSet,
    SessionSummary,
)
from .source import ParseError


# ── Field coercion ──────────────────────────────────────────────────────

def _count(value, default=0):
    """Non-negative integer from a loosely-typed counter."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value):
        return default
    return max(0, int(value))


def _elapsed(value):
    """Milliseconds since last activity, or None when never active."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value


def _text(value, default):
    if isinstance(value, str) and value:
        return value
    return default


def _require_mapping(raw, what):
    if not isinstance(raw, dict):
        raise ParseError(f'Unexpected {what} payload: expected an object, got {type(raw).__name__}',
                         detail=what)
    return raw


# ── Status ──────────────────────────────────────────────────────────────

def _status_defaults(sessions):
    defaults = sessions.get('defaults') if isinstance(sessions, dict) else None
    if not isinstance(defaults, dict):
        defaults = {}
    return (_text(defaults.get('model'), DEFAULT_MODEL),
            _count(defaults.get('contextTokens'), DEFAULT_CONTEXT_TOKENS))


def normalize_session_status(raw):
    """Return ``{agent_id: AgentSummary}`` from a raw ``status`` payload.

    ``sessions.byAgent`` may be a mapping keyed by agent id or a list of
    records carrying ``agentId``; both produce the same mapping.
    """
    raw = _require_mapping(raw, 'status')
    sessions = raw.get('sessions')
    if not isinstance(sessions, dict):
        return {}
    model, context = _status_defaults(sessions)
    by_agent = sessions.get('byAgent')

    result = {}
    if isinstance(by_agent, list):
        for entry in by_agent:
            if not isinstance(entry, dict):
                continue
            agent_id = entry.get('agentId')
            if not agent_id:
                continue
            recent = entry.get('recent')
            latest = recent[0] if isinstance(recent, list) and recent else None
            if not isinstance(latest, dict):
                latest = {}
            result[agent_id] = AgentSummary(
                agent_id=agent_id,
                session_count=_count(entry.get('count')),
                model=_text(latest.get('model'), model),
                context_tokens=_count(latest.get('contextTokens'), context),
                input_tokens=_count(latest.get('inputTokens')),
                output_tokens=_count(latest.get('outputTokens')),
                total_tokens=_count(latest.get('totalTokens')),
                last_active_ms=_elapsed(latest.get('age')),
            )
    elif isinstance(by_agent, dict):
        for agent_id, entry in by_agent.items():
            if not isinstance(entry, dict):
                continue
            result[agent_id] = AgentSummary(
                agent_id=agent_id,
                session_count=_count(entry.get('sessionCount')),
                model=_text(entry.get('model'), model),
                context_tokens=_count(entry.get('contextTokens'), context),
                input_tokens=_count(entry.get('inputTokens')),
                output_tokens=_count(entry.get('outputTokens')),
                total_tokens=_count(entry.get('totalTokens')),
                last_active_ms=_elapsed(entry.get('lastActiveAgeMs')),
            )
    return result


def gateway_reachability(status_raw):
    """Extract ``(reachable, version)`` from a raw status payload."""
    if not isinstance(status_raw, dict):
        return None, None
    gateway = status_raw.get('gateway')
    if not isinstance(gateway, dict):
        return None, None
    reachable = gateway.get('reachable')
    if not isinstance(reachable, bool):
        reachable = None
    self_info = gateway.get('self')
    version = self_info.get('version') if isinstance(self_info, dict) else None
    return reachable, (version if isinstance(version, str) and version else None)


# ── Health ──────────────────────────────────────────────────────────────

def decode_channel(name, raw):
    """Decode one channel entry into a ChannelState.

    Precedence: a successful probe means connected even when ``running`` is
    false; then running means connecting; then configured means disconnected.
    """
    if isinstance(raw, str):
        return ChannelState(name=name, status=raw, legacy=True)
    if not isinstance(raw, dict):
        return ChannelState(name=name, status='unknown', legacy=True)

    probe = raw.get('probe')
    probe_ok = isinstance(probe, dict) and probe.get('ok') is True
    running = raw.get('running') is True
    configured = raw.get('configured') is True

    if probe_ok:
        status = 'connected'
    elif running:
        status = 'connecting'
    elif configured:
        status = 'disconnected'
    else:
        status = 'not_configured'

    return ChannelState(
        name=name,
        status=status,
        connected_at=raw.get('lastStartAt') or raw.get('connectedAt') or None,
        configured=configured,
        running=running,
        probe_ok=probe_ok,
    )


def normalize_health(raw, reachable=None, version=None):
    """Build a HealthSnapshot from a raw ``health`` payload.

    ``reachable`` and ``version`` come from the status query's gateway block
    when it is available; a boolean ``reachable`` takes precedence over the
    health payload's ``ok`` flag.
    """
    if raw is not None:
        _require_mapping(raw, 'health')
    raw = raw or {}
    ok = raw.get('ok') is True

    if isinstance(reachable, bool):
        status = 'running' if reachable else 'stopped'
    elif ok:
        status = 'running'
    else:
        status = 'unknown'

    gw = raw.get('gateway') if isinstance(raw.get('gateway'), dict) else {}
    pid = gw.get('pid')
    gateway = GatewayState(
        status=status,
        version=version or _text(gw.get('version'), 'N/A'),
        uptime=_text(gw.get('uptime'), 'N/A'),
        uptime_seconds=_count(gw.get('uptimeSeconds')),
        pid=pid if isinstance(pid, int) and not isinstance(pid, bool) else None,
    )

    channels = {}
    raw_channels = raw.get('channels')
    if isinstance(raw_channels, dict):
        for name, entry in raw_channels.items():
            channels[name] = decode_channel(name, entry)

    return HealthSnapshot(ok=ok, gateway=gateway, channels=channels)


# ── Logs ────────────────────────────────────────────────────────────────

def _log_agent(record):
    agent = record.get('agent')
    if agent:
        return agent
    raw = record.get('raw')
    if isinstance(raw, str) and raw.startswith('{'):
        try:
            parsed = json.loads(raw)
        except ValueError:
            return None
        if isinstance(parsed, dict):
            return parsed.get('agent') or None
    return None


def normalize_logs(raw):
    """Flatten a batch object or NDJSON record list into a LogSet.

    Source order is kept (newest first). Error and warning counts cover the
    whole set, before any filtering.
    """
    if raw is None:
        return LogSet()
    if isinstance(raw, dict):
        records = raw.get('logs')
        if not isinstance(records, list):
            records = []
        records = [r for r in records
                   if isinstance(r, dict) and r.get('type', 'log') == 'log']
    elif isinstance(raw, list):
        records = [r for r in raw if isinstance(r, dict) and r.get('type') == 'log']
    else:
        raise ParseError(f'Unexpected logs payload: {type(raw).__name__}', detail='logs')

    entries = []
    errors = warnings = 0
    for index, record in enumerate(records, 1):
        level = _text(record.get('level'), 'info')
        if level == 'error':
            errors += 1
        elif level == 'warn':
            warnings += 1
        entries.append(LogEntry(
            id=f'log-{index:03d}',
            timestamp=record.get('time') or record.get('timestamp'),
            level=level,
            message=record.get('message'),
            agent=_log_agent(record),
            session=record.get('session') or None,
            stack=record.get('stack') or None,
            raw=record.get('raw') or None,
        ))
    return LogSet(entries=tuple(entries), errors=errors, warnings=warnings)


# ── Sessions ────────────────────────────────────────────────────────────

def _agent_from_key(key):
    # Session keys look like "agent:<id>:<name>"
    if isinstance(key, str) and key.startswith('agent:'):
        parts = key.split(':')
        if len(parts) >= 3 and parts[1]:
            return parts[1]
    return None


def normalize_sessions(raw):
    """Return a list of SessionSummary from a raw ``sessions`` payload."""
    if raw is None:
        return []
    if isinstance(raw, dict):
        records = raw.get('sessions')
        if not isinstance(records, list):
            records = []
    elif isinstance(raw, list):
        records = raw
    else:
        raise ParseError(f'Unexpected sessions payload: {type(raw).__name__}', detail='sessions')

    sessions = []
    for record in records:
        if not isinstance(record, dict):
            continue
        key = record.get('sessionKey') or record.get('key')
        age = record.get('lastActiveAgeMs')
        if age is None:
            age = record.get('age')
        sessions.append(SessionSummary(
            session_key=key,
            agent_id=record.get('agentId') or _agent_from_key(key),
            model=_text(record.get('model'), DEFAULT_MODEL),
            input_tokens=_count(record.get('inputTokens')),
            output_tokens=_count(record.get('outputTokens')),
            total_tokens=_count(record.get('totalTokens')),
            channel=_text(record.get('channel'), 'unknown'),
            last_active_ms=_elapsed(age),
        ))
    return sessions
