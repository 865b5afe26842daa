"""Activity log parsing and phase reconstruction."""
