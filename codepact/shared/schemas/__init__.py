"""Shared schema definitions."""
