"""Shared utilities: caching and logging setup."""
