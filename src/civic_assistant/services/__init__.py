"""Adapters for external collaborators."""
