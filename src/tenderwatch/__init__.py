"""Procurement notice watcher: collect, match, score and notify."""

__version__ = "0.1.0"
