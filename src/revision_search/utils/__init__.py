"""Utility helpers for git invocation and exception logging."""
