"""Vulnerability source crawlers, push message rendering and a webhook receiver."""

__version__ = "1.7.0"