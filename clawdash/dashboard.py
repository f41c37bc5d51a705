#!/usr/bin/env python3
"""
ClawDash — JSON monitoring API and live dashboard for OpenClaw agents 🦞

Polls the openclaw CLI (status, health, logs, sessions) on every request and
serves a normalized view. Nothing is cached or persisted.

Usage:
    clawdash                          # port 3200, openclaw from PATH
    clawdash --port 9000
    clawdash --openclaw ~/bin/openclaw --timeout-ms 8000
    OPENCLAW_BIN=/opt/openclaw/bin/openclaw clawdash
"""

import argparse
import logging
import os
from datetime import datetime, timezone

from flask import Flask, jsonify, make_response, render_template_string, request
from werkzeug.exceptions import HTTPException

from . import __version__
from .aggregate import (
    NotFound, build_agent_detail, build_agents, build_health, build_logs,
    build_overview, build_sessions, clamp_log_limit,
)
from .config import DEFAULT_PORT, detect_config
from .models import Totals
from .source import QUERIES, OpenClawCLI, SourceError, fetch_all

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.json.sort_keys = False
app.config.update(detect_config())

POLL_INTERVAL_MS = 10_000

ENDPOINTS = [
    'GET /api/overview - Combined dashboard data',
    'GET /api/agents - Agent status + tokens',
    'GET /api/agents/:id - Single agent details',
    'GET /api/health - Gateway + channels',
    'GET /api/logs - Recent errors (limit, level, agent)',
    'GET /api/sessions - Session details (agent, active)',
    'GET /health - Liveness check',
    'GET /dashboard - Live dashboard',
]


# ── Helpers ─────────────────────────────────────────────────────────────

def get(rule):
    """Register a GET-only route; other methods fall through to the 404 envelope."""
    return app.route(rule, methods=['GET'], provide_automatic_options=False)


def _timestamp():
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def _source():
    """The status source for this request (a stub can be set for tests)."""
    source = app.config.get('OPENCLAW_SOURCE')
    if source is not None:
        return source
    return OpenClawCLI(app.config['OPENCLAW_COMMAND'], timeout=app.config['CLI_TIMEOUT'],
                       env=app.config.get('OPENCLAW_ENV'))


def _directory():
    return app.config['AGENT_DIRECTORY']


def _show_details():
    return app.debug or app.config.get('CLAWDASH_ENV') == 'development'


def _ok(**payload):
    return jsonify({'timestamp': _timestamp(), **payload})


def _error(code, message, status, details=None, **defaults):
    error = {'code': code, 'message': message}
    if details is not None:
        error['details'] = details
    return jsonify({'error': error, 'timestamp': _timestamp(), **defaults}), status


def _cli_error(message, exc, **defaults):
    return _error('CLI_ERROR', message, 500, details=str(exc), **defaults)


@app.before_request
def _get_only():
    # Werkzeug answers HEAD on GET rules
    if request.method != 'GET':
        return _not_found(None)


@app.after_request
def _cors(resp):
    resp.headers['Access-Control-Allow-Origin'] = '*'
    resp.headers['Access-Control-Allow-Methods'] = 'GET'
    resp.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return resp


# ── Error handlers ──────────────────────────────────────────────────────

@app.errorhandler(404)
@app.errorhandler(405)
def _not_found(_e):
    path = request.full_path.rstrip('?')
    return _error('NOT_FOUND', f'Endpoint not found: {request.method} {path}', 404)


@app.errorhandler(Exception)
def _internal_error(e):
    if isinstance(e, HTTPException):
        return e
    logger.exception('Server error on %s %s', request.method, request.path)
    details = str(e) if _show_details() else None
    return _error('INTERNAL_ERROR', 'Internal server error', 500, details=details)


# ── API Routes ──────────────────────────────────────────────────────────

@get('/')
def index():
    return _ok(name='ClawDash API', version=__version__, endpoints=ENDPOINTS)


@get('/health')
def liveness():
    return jsonify({'status': 'ok', 'timestamp': _timestamp()})


@get('/dashboard')
def dashboard():
    resp = make_response(render_template_string(DASHBOARD_HTML, poll_ms=POLL_INTERVAL_MS,
                                                version=__version__))
    resp.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'
    return resp


@get('/api/overview')
def api_overview():
    """Combined dashboard data; each sub-query degrades on its own."""
    results = fetch_all(_source(), QUERIES, isolate=True)
    try:
        payload = build_overview(results, _directory())
    except Exception as e:
        logger.exception('Overview aggregation failed')
        details = str(e) if _show_details() else None
        return _error('INTERNAL_ERROR', 'Failed to aggregate overview data', 500, details=details)
    return _ok(**payload)


@get('/api/agents')
def api_agents():
    try:
        agents, totals = build_agents(_source().status(), _directory())
    except SourceError as e:
        return _cli_error('Failed to get agent data', e,
                          agents=[], totals=Totals().to_dict())
    return _ok(agents=[a.to_dict() for a in agents], totals=totals.to_dict())


@get('/api/agents/<agent_id>')
def api_agent(agent_id):
    try:
        results = fetch_all(_source(), ['status', 'sessions'], isolate=False)
        agent = build_agent_detail(agent_id, results['status'], results['sessions'], _directory())
    except NotFound as e:
        return _error('NOT_FOUND', str(e), 404)
    except SourceError as e:
        return _cli_error(f'Failed to get agent data for {agent_id}', e)
    return _ok(agent=agent)


@get('/api/health')
def api_health():
    results = fetch_all(_source(), ['health', 'status'], isolate=True)
    try:
        payload = build_health(results['health'], results['status'])
    except SourceError as e:
        return _cli_error('Failed to get health data', e,
                          gateway={'status': 'error'}, channels={}, overall='critical',
                          indicators={'gateway': 'red', 'channels': 'unknown', 'errors': 'unknown'})
    return _ok(**payload)


@get('/api/logs')
def api_logs():
    limit = clamp_log_limit(request.args.get('limit'))
    level = request.args.get('level') or 'all'
    agent = request.args.get('agent') or None
    try:
        payload = build_logs(_source().logs(), limit=limit, level=level, agent=agent)
    except SourceError as e:
        return _cli_error('Failed to get logs', e,
                          logs=[], summary={'total': 0, 'errors': 0, 'warnings': 0})
    return _ok(**payload)


@get('/api/sessions')
def api_sessions():
    agent = request.args.get('agent') or None
    active_only = request.args.get('active', '').lower() in ('true', '1')
    try:
        sessions, totals = build_sessions(_source().sessions(), _directory(),
                                          agent=agent, active_only=active_only)
    except SourceError as e:
        return _cli_error('Failed to get sessions data', e,
                          sessions=[], totals={'sessions': 0, 'activeSessions': 0, 'totalTokens': 0})
    return _ok(sessions=[s.to_dict() for s in sessions], totals=totals)


# ── HTML Template ───────────────────────────────────────────────────────

DASHBOARD_HTML = r"""
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>ClawDash 🦞</title>
<style>
  :root {
    --bg: #0f172a; --panel: #1e293b; --border: #334155;
    --text: #e2e8f0; --muted: #94a3b8;
    --green: #22c55e; --yellow: #f59e0b; --red: #ef4444; --gray: #64748b;
  }
  * { box-sizing: border-box; }
  body { margin: 0; padding: 24px; background: var(--bg); color: var(--text);
         font-family: 'Inter', system-ui, sans-serif; font-size: 14px; }
  h1 { font-size: 20px; margin: 0 0 16px; }
  h2 { font-size: 13px; text-transform: uppercase; letter-spacing: .05em; color: var(--muted); }
  .row { display: flex; gap: 12px; flex-wrap: wrap; margin-bottom: 20px; }
  .card { background: var(--panel); border: 1px solid var(--border); border-radius: 10px;
          padding: 14px 16px; min-width: 160px; }
  .agent { width: 260px; }
  .big { font-size: 22px; font-weight: 600; }
  .muted { color: var(--muted); font-size: 12px; }
  .dot { display: inline-block; width: 8px; height: 8px; border-radius: 50%; margin-right: 6px; }
  .working, .connected, .running, .healthy { background: var(--green); }
  .idle, .not_configured, .unknown { background: var(--gray); }
  .connecting, .degraded { background: var(--yellow); }
  .error, .disconnected, .stopped, .critical { background: var(--red); }
  .meter { height: 6px; background: var(--border); border-radius: 3px; margin: 8px 0 4px; }
  .meter > div { height: 6px; border-radius: 3px; background: var(--green); }
  .log { font-family: ui-monospace, monospace; font-size: 12px; padding: 6px 0;
         border-bottom: 1px solid var(--border); }
  #banner { display: none; background: var(--red); color: white; padding: 10px 14px;
            border-radius: 8px; margin-bottom: 16px; }
  button { margin-left: 12px; background: white; color: var(--red); border: 0;
           border-radius: 6px; padding: 4px 10px; cursor: pointer; }
</style>
</head>
<body>
<h1>🦞 ClawDash <span class="muted">v{{ version }}</span></h1>
<div id="banner"><span id="banner-text"></span><button onclick="refresh()">Retry</button></div>
<div id="content" class="muted">Loading…</div>

<script>
const POLL_MS = {{ poll_ms }};

function esc(s) {
  return String(s == null ? '' : s).replace(/[&<>"]/g, c => ({'&': '&amp;', '<': '&lt;', '>': '&gt;', '"': '&quot;'})[c]);
}

function fmtTokens(n) {
  if (!n) return '0';
  if (n >= 1e6) return (n / 1e6).toFixed(1) + 'M';
  if (n >= 1e3) return (n / 1e3).toFixed(1) + 'K';
  return String(n);
}

function render(data) {
  const t = data.totals || {};
  const h = data.health || {gateway: {}, channels: {}};
  let html = '<div class="row">';
  html += `<div class="card"><div class="muted">Agents</div><div class="big">${t.agents || 0}</div></div>`;
  html += `<div class="card"><div class="muted">Active</div><div class="big">${t.activeAgents || 0}</div></div>`;
  html += `<div class="card"><div class="muted">Tokens</div><div class="big">${fmtTokens(t.totalTokens)}</div></div>`;
  html += `<div class="card"><div class="muted">Sessions</div><div class="big">${t.totalSessions || 0}</div></div>`;
  html += '</div><h2>Agents</h2><div class="row">';
  for (const a of data.agents || []) {
    html += `<div class="card agent">
      <div><span class="dot ${esc(a.status)}"></span>${esc(a.emoji)} <b>${esc(a.name)}</b>
        <span class="muted">${esc(a.status)}</span></div>
      <div class="muted">${esc(a.model)} · ${a.sessions} sessions</div>
      <div class="meter"><div style="width:${a.percentUsed}%"></div></div>
      <div class="muted">${fmtTokens(a.totalTokens)} / ${fmtTokens(a.contextTokens)} (${a.percentUsed}%)
        · ${esc(a.lastActiveText)}</div>
    </div>`;
  }
  html += '</div><h2>Health</h2><div class="row">';
  html += `<div class="card"><span class="dot ${esc(h.overall)}"></span>Overall: <b>${esc(h.overall)}</b></div>`;
  html += `<div class="card"><span class="dot ${esc(h.gateway.status)}"></span>Gateway: ${esc(h.gateway.status)}
    <div class="muted">version ${esc(h.gateway.version)}</div></div>`;
  for (const [name, status] of Object.entries(h.channels || {})) {
    html += `<div class="card"><span class="dot ${esc(status)}"></span>${esc(name)}: ${esc(status)}</div>`;
  }
  html += '</div><h2>Recent errors</h2><div class="card">';
  const logs = data.logs || [];
  if (!logs.length) html += '<div class="muted">No recent errors</div>';
  for (const l of logs) {
    html += `<div class="log"><span class="muted">${esc(l.timestamp)}</span>
      ${l.agent ? '[' + esc(l.agent) + '] ' : ''}${esc(l.message)}</div>`;
  }
  html += '</div>';
  document.getElementById('content').innerHTML = html;
}

async function refresh() {
  try {
    const r = await fetch('/api/overview');
    const data = await r.json();
    if (!r.ok) throw new Error((data.error && data.error.message) || ('HTTP ' + r.status));
    document.getElementById('banner').style.display = 'none';
    render(data);
  } catch (e) {
    document.getElementById('banner-text').textContent = 'Failed to load overview: ' + e.message;
    document.getElementById('banner').style.display = 'block';
  }
}

refresh();
setInterval(refresh, POLL_MS);
</script>
</body>
</html>
"""


# ── CLI Entry Point ─────────────────────────────────────────────────────

BANNER = r"""
   ____ _                ____            _
  / ___| | __ ___      _|  _ \  __ _ ___| |__
 | |   | |/ _` \ \ /\ / / | | |/ _` / __| '_ \
 | |___| | (_| |\ V  V /| |_| | (_| \__ \ | | |
  \____|_|\__,_| \_/\_/ |____/ \__,_|___/_| |_|
                        v{version}

  🦞  Agents · Tokens · Channels · Errors
"""


def main():
    parser = argparse.ArgumentParser(
        description="ClawDash — JSON monitoring API for OpenClaw agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Environment variables:\n"
               "  OPENCLAW_BIN          openclaw command (default: auto-detected)\n"
               "  CLAWDASH_TIMEOUT_MS   Per-call CLI timeout (default: 5000)\n"
               "  CLAWDASH_AGENTS_FILE  JSON file of agent display names\n"
               "  CLAWDASH_ENV          'development' includes error details\n"
               "  PORT                  Port (default: 3200)\n"
    )
    parser.add_argument('--port', '-p', type=int, default=None, help=f'Port (default: {DEFAULT_PORT})')
    parser.add_argument('--host', '-H', type=str, default='0.0.0.0', help='Host (default: 0.0.0.0)')
    parser.add_argument('--openclaw', '-o', type=str, help='openclaw command to run')
    parser.add_argument('--timeout-ms', '-t', type=int, help='Per-call CLI timeout in ms')
    parser.add_argument('--agents-file', '-a', type=str, help='JSON file of agent display names')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    parser.add_argument('--version', '-v', action='version', version=f'clawdash {__version__}')

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    app.config.update(detect_config(args))

    port = args.port
    if port is None:
        try:
            port = int(os.environ.get('PORT', DEFAULT_PORT))
        except ValueError:
            port = DEFAULT_PORT

    print(BANNER.format(version=__version__))
    print(f"  openclaw:   {' '.join(app.config['OPENCLAW_COMMAND'])}")
    print(f"  Timeout:    {int(app.config['CLI_TIMEOUT'] * 1000)}ms")
    print(f"  Agents:     {len(app.config['AGENT_DIRECTORY'])} named")
    print()
    print(f"  → http://localhost:{port}/api/overview")
    print(f"  → http://localhost:{port}/dashboard")
    print()

    app.run(host=args.host, port=port, debug=False, threaded=True)


if __name__ == '__main__':
    main()
