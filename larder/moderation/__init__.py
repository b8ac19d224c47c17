"""Moderation service facade, command types, results and errors."""
