"""Recipe moderation lifecycle."""
