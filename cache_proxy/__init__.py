"""Transparent caching reverse proxy for a single JSON upstream."""
