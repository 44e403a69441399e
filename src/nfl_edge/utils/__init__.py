"""Shared helpers (logging setup)."""

__all__: list[str] = []
