"""Podcast subscriptions with local-first, sync-friendly metadata storage."""

__version__ = "0.1.0"
