"""
Immutable records rebuilt on every request.

Python attributes are snake_case; ``to_dict()`` produces the camelCase shape
served over the API.
"""

from dataclasses import dataclass, field
from typing import Optional

DEFAULT_MODEL = 'glm-5'
DEFAULT_CONTEXT_TOKENS = 204800
GENERIC_EMOJI = '🤖'


@dataclass(frozen=True)
class AgentMeta:
    name: str
    emoji: str = GENERIC_EMOJI


@dataclass(frozen=True)
class AgentSummary:
    """One agent's entry in the normalized status ``byAgent`` mapping."""
    agent_id: str
    session_count: int = 0
    model: str = DEFAULT_MODEL
    context_tokens: int = DEFAULT_CONTEXT_TOKENS
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    last_active_ms: Optional[float] = None


@dataclass(frozen=True)
class AgentRecord:
    id: str
    name: str
    emoji: str
    status: str
    model: str
    context_tokens: int
    input_tokens: int
    output_tokens: int
    total_tokens: int
    percent_used: int
    session_count: int
    last_active_ms: Optional[float]
    last_active_text: str
    total_tokens_text: str

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'emoji': self.emoji,
            'status': self.status,
            'model': self.model,
            'contextTokens': self.context_tokens,
            'inputTokens': self.input_tokens,
            'outputTokens': self.output_tokens,
            'totalTokens': self.total_tokens,
            'totalTokensText': self.total_tokens_text,
            'percentUsed': self.percent_used,
            'sessions': self.session_count,
            'lastActiveMs': self.last_active_ms,
            'lastActiveText': self.last_active_text,
        }


@dataclass(frozen=True)
class SessionSummary:
    """One entry of the normalized ``sessions`` query."""
    session_key: Optional[str]
    agent_id: Optional[str]
    model: str = DEFAULT_MODEL
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    channel: str = 'unknown'
    last_active_ms: Optional[float] = None


@dataclass(frozen=True)
class SessionRecord:
    session_key: Optional[str]
    agent_id: Optional[str]
    agent_name: str
    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    channel: str
    last_active_ms: Optional[float]
    last_active_text: str
    status: str

    def to_dict(self):
        return {
            'sessionKey': self.session_key,
            'agentId': self.agent_id,
            'agentName': self.agent_name,
            'model': self.model,
            'inputTokens': self.input_tokens,
            'outputTokens': self.output_tokens,
            'totalTokens': self.total_tokens,
            'lastActiveMs': self.last_active_ms,
            'lastActiveText': self.last_active_text,
            'channel': self.channel,
            'status': self.status,
        }


@dataclass(frozen=True)
class ChannelState:
    name: str
    status: str
    connected_at: Optional[object] = None
    configured: bool = False
    running: bool = False
    probe_ok: bool = False
    legacy: bool = False

    def to_dict(self):
        if self.legacy:
            return {'status': self.status, 'connectedAt': self.connected_at}
        return {
            'status': self.status,
            'connectedAt': self.connected_at,
            'configured': self.configured,
            'running': self.running,
            'probeOk': self.probe_ok,
        }


@dataclass(frozen=True)
class GatewayState:
    status: str = 'unknown'
    version: str = 'N/A'
    uptime: str = 'N/A'
    uptime_seconds: float = 0
    pid: Optional[int] = None

    def to_dict(self):
        return {
            'status': self.status,
            'uptime': self.uptime,
            'uptimeSeconds': self.uptime_seconds,
            'version': self.version,
            'pid': self.pid,
        }


@dataclass(frozen=True)
class HealthSnapshot:
    ok: bool
    gateway: GatewayState
    channels: dict = field(default_factory=dict)


@dataclass(frozen=True)
class LogEntry:
    id: str
    timestamp: Optional[object]
    level: str
    message: Optional[str]
    agent: Optional[str] = None
    session: Optional[str] = None
    stack: Optional[str] = None
    raw: Optional[str] = None

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': self.timestamp,
            'level': self.level,
            'message': self.message,
            'agent': self.agent,
            'session': self.session,
            'stack': self.stack,
            'raw': self.raw,
        }


@dataclass(frozen=True)
class LogSet:
    entries: tuple = ()
    errors: int = 0
    warnings: int = 0


@dataclass(frozen=True)
class Totals:
    agents: int = 0
    active_agents: int = 0
    total_tokens: int = 0
    total_sessions: int = 0

    def to_dict(self):
        return {
            'agents': self.agents,
            'activeAgents': self.active_agents,
            'totalTokens': self.total_tokens,
            'totalSessions': self.total_sessions,
        }
