"""Larder -- role-based moderation and account-status core for recipe sharing."""

__version__ = "0.1.0"
