"""Shared helpers: ignore rules and logging setup."""
