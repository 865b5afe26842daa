"""Project sessions, registry, health and notification fan-out."""
