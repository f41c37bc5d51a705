"""
openclaw CLI wrapper: runs the status/health/logs/sessions queries and decodes
their JSON (or newline-delimited JSON) output.

No retries and no caching — every call spawns a fresh process bounded by the
configured timeout.
"""

import json
import logging
import re
import subprocess
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0  # seconds
_ANSI_RE = re.compile(r'\x1B\[[0-?]*[ -/]*[@-~]')
QUERIES = ('status', 'health', 'logs', 'sessions')


# ── Errors ──────────────────────────────────────────────────────────────

class SourceError(Exception):
    """A query to the openclaw CLI failed."""

    def __init__(self, message, command=None, detail=None):
        super().__init__(message)
        self.command = command
        self.detail = detail


class ParseError(SourceError):
    """CLI output was not valid JSON."""


class UpstreamTimeout(SourceError):
    """CLI call exceeded the time budget."""


class UpstreamFailure(SourceError):
    """CLI process could not run or reported a failure."""


def _strip_ansi(text):
    if not text:
        return ''
    return _ANSI_RE.sub('', text)


# ── CLI runner ──────────────────────────────────────────────────────────

class OpenClawCLI:
    """Runs ``openclaw <query> --json`` and returns the decoded payload."""

    def __init__(self, command=('openclaw',), timeout=DEFAULT_TIMEOUT, env=None):
        if isinstance(command, str):
            command = (command,)
        self.command = tuple(command)
        self.timeout = timeout
        self.env = env

    def run(self, *args):
        """Run the CLI and return its stdout; raise on timeout or failure."""
        cmd = list(self.command) + list(args)
        cmd_text = ' '.join(cmd)
        try:
            r = subprocess.run(cmd, capture_output=True, text=True,
                               timeout=self.timeout, env=self.env)
        except subprocess.TimeoutExpired:
            ms = int(self.timeout * 1000)
            logger.warning('CLI command timed out after %dms: %s', ms, cmd_text)
            raise UpstreamTimeout(f'CLI command timed out after {ms}ms: {cmd_text}',
                                  command=cmd_text)
        except OSError as e:
            logger.warning('CLI error for "%s": %s', cmd_text, e)
            raise UpstreamFailure(f'CLI error: {e}', command=cmd_text, detail=str(e))

        out = _strip_ansi(r.stdout or '').strip()
        err = _strip_ansi(r.stderr or '').strip()

        if r.returncode != 0:
            detail = err or out or f'exit code {r.returncode}'
            logger.warning('CLI error for "%s" (exit %d): %s', cmd_text, r.returncode, detail)
            raise UpstreamFailure(f'CLI error: {detail}', command=cmd_text, detail=detail)

        if err and not out:
            logger.warning('CLI stderr for "%s": %s', cmd_text, err)
            raise UpstreamFailure(f'CLI stderr: {err}', command=cmd_text, detail=err)

        return out

    def run_json(self, *args):
        """Run the CLI and decode a single JSON document."""
        out = self.run(*args)
        try:
            return json.loads(out)
        except ValueError as e:
            cmd_text = ' '.join(list(self.command) + list(args))
            logger.warning('Failed to parse CLI output for "%s": %s', cmd_text, e)
            logger.debug('Raw output: %s', out[:500])
            raise ParseError(f'Failed to parse CLI output: {e}', command=cmd_text, detail=str(e))

    def run_ndjson(self, *args):
        """Run the CLI and decode newline-delimited JSON into a list."""
        out = self.run(*args)
        cmd_text = ' '.join(list(self.command) + list(args))
        # A pretty-printed single document is accepted as well; a one-line
        # output is always a stream of one record.
        if '\n' in out:
            try:
                return json.loads(out)
            except ValueError:
                pass

        results = []
        for lineno, line in enumerate(out.splitlines(), 1):
            line = line.strip()
            if not line:
                continue
            try:
                results.append(json.loads(line))
            except ValueError as e:
                logger.warning('Failed to parse NDJSON for "%s" (line %d): %s', cmd_text, lineno, e)
                logger.debug('Raw output: %s', out[:500])
                raise ParseError(f'Failed to parse NDJSON: {e}', command=cmd_text, detail=str(e))
        return results

    # ── Logical queries ─────────────────────────────────────────────

    def status(self):
        return self.run_json('status', '--json')

    def health(self):
        return self.run_json('health', '--json')

    def logs(self):
        return self.run_ndjson('logs', '--json')

    def sessions(self):
        return self.run_json('sessions', '--json')


# ── Parallel fetch ──────────────────────────────────────────────────────

def fetch_all(source, names, isolate=True):
    """Run the named queries concurrently and return ``{name: payload}``.

    With ``isolate`` a failed query is logged and maps to None; otherwise the
    first failure (in ``names`` order) is raised once every call has finished.
    """
    names = list(names)
    if not names:
        return {}

    results = {}
    errors = {}
    with ThreadPoolExecutor(max_workers=len(names)) as pool:
        futures = {name: pool.submit(getattr(source, name)) for name in names}
        for name, future in futures.items():
            try:
                results[name] = future.result()
            except Exception as e:
                errors[name] = e
                results[name] = None

    for name in names:
        e = errors.get(name)
        if e is None:
            continue
        if not isolate:
            raise e
        logger.warning('Failed to get %s: %s', name, e)
    return results
