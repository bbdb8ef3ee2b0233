"""Civic Assistant: conversational front-end for city service requests."""

__version__ = "1.0.0"
