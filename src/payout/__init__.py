"""Resumable, idempotent bulk token distribution."""

__version__ = "0.1.0"
