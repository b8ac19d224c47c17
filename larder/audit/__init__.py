"""Append-only moderation log."""
