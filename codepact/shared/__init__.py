"""Shared utilities and base schemas."""
