"""Persistence collaborators for users, recipes and the moderation log."""
