"""Change detection: log tailing and directory watching."""
