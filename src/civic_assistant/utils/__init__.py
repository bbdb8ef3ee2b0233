"""Shared utilities."""

from civic_assistant.utils.logging import setup_logging

__all__ = ["setup_logging"]
