"""Content moderation for roast lines."""
