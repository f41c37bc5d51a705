"""
Configuration: openclaw binary resolution, CLI timeout, agent directory.

Each setting resolves CLI flag → environment variable → default.
"""

import json
import logging
import os
import shlex
import shutil
from collections.abc import Mapping
from types import MappingProxyType

from .models import GENERIC_EMOJI, AgentMeta
from .source import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3200

# Display names for the agents of the reference deployment
BUILTIN_AGENTS = {
    'main': AgentMeta('Doobs', '🎯'),
    'neil': AgentMeta('Neil', '💻'),
    'archie': AgentMeta('Archie', '🏗️'),
    'alana': AgentMeta('Alana', '📅'),
    'trevor': AgentMeta('Trevor', '🔐'),
    'kai': AgentMeta('Kai', '🧠'),
}


class AgentDirectory(Mapping):
    """Read-only agent id → AgentMeta table."""

    def __init__(self, entries=None):
        self._entries = MappingProxyType(dict(entries or {}))

    def __getitem__(self, agent_id):
        return self._entries[agent_id]

    def __iter__(self):
        return iter(self._entries)

    def __len__(self):
        return len(self._entries)

    def lookup(self, agent_id):
        """Display metadata for an agent, falling back to its id."""
        meta = self._entries.get(agent_id)
        if meta is None:
            return AgentMeta(name=str(agent_id), emoji=GENERIC_EMOJI)
        return meta


def _label(value, default):
    return value if isinstance(value, str) and value else default


def load_agent_directory(path=None):
    """Built-in table merged with an optional JSON file of ``{id: {name, emoji}}``."""
    entries = dict(BUILTIN_AGENTS)
    if not path:
        return AgentDirectory(entries)
    try:
        with open(os.path.expanduser(path)) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning('Ignoring agents file %s: %s', path, e)
        return AgentDirectory(entries)
    if not isinstance(data, dict):
        logger.warning('Ignoring agents file %s: expected a JSON object', path)
        return AgentDirectory(entries)

    for agent_id, meta in data.items():
        if isinstance(meta, str):
            entries[agent_id] = AgentMeta(_label(meta, agent_id))
        elif isinstance(meta, dict):
            entries[agent_id] = AgentMeta(
                name=_label(meta.get('name'), agent_id),
                emoji=_label(meta.get('emoji'), GENERIC_EMOJI),
            )
    return AgentDirectory(entries)


def find_openclaw():
    """Locate the openclaw binary and, for nvm installs, an env with node on PATH."""
    oc_bin = shutil.which('openclaw')
    if oc_bin:
        return oc_bin, None

    nvm_base = os.path.expanduser('~/.nvm/versions/node')
    if os.path.isdir(nvm_base):
        for entry in sorted(os.listdir(nvm_base), reverse=True):
            bin_dir = os.path.join(nvm_base, entry, 'bin')
            p = os.path.join(bin_dir, 'openclaw')
            if os.path.isfile(p) and os.access(p, os.X_OK):
                # the nvm launcher is a "#!/usr/bin/env node" script
                env = os.environ.copy()
                env['PATH'] = bin_dir + os.pathsep + env.get('PATH', '/usr/bin:/bin')
                return p, env

    for d in ['/usr/local/bin', '/usr/local/lib/node_modules/.bin']:
        p = os.path.join(d, 'openclaw')
        if os.path.isfile(p) and os.access(p, os.X_OK):
            return p, None

    return 'openclaw', None


def _timeout_seconds(value):
    try:
        ms = float(value)
    except (TypeError, ValueError):
        logger.warning('Invalid timeout %r, using %dms', value, int(DEFAULT_TIMEOUT * 1000))
        return DEFAULT_TIMEOUT
    if ms <= 0:
        return DEFAULT_TIMEOUT
    return ms / 1000


def detect_config(args=None):
    """Resolve settings from CLI args and environment into an app.config dict."""
    # 1. openclaw command (may carry arguments, e.g. "python3 fake.py")
    env = None
    if args and getattr(args, 'openclaw', None):
        command = shlex.split(args.openclaw)
    elif os.environ.get('OPENCLAW_BIN'):
        command = shlex.split(os.environ['OPENCLAW_BIN'])
    else:
        oc_bin, env = find_openclaw()
        command = [oc_bin]

    # 2. Per-call timeout
    if args and getattr(args, 'timeout_ms', None):
        timeout = _timeout_seconds(args.timeout_ms)
    elif os.environ.get('CLAWDASH_TIMEOUT_MS'):
        timeout = _timeout_seconds(os.environ['CLAWDASH_TIMEOUT_MS'])
    else:
        timeout = DEFAULT_TIMEOUT

    # 3. Agent display names
    if args and getattr(args, 'agents_file', None):
        agents_file = args.agents_file
    else:
        agents_file = os.environ.get('CLAWDASH_AGENTS_FILE')

    return {
        'OPENCLAW_COMMAND': command,
        'OPENCLAW_ENV': env,
        'CLI_TIMEOUT': timeout,
        'AGENT_DIRECTORY': load_agent_directory(agents_file),
        'CLAWDASH_ENV': os.environ.get('CLAWDASH_ENV', 'production'),
    }
