"""ClawDash — a JSON monitoring API and dashboard over the openclaw CLI."""

__version__ = "1.0.0"
