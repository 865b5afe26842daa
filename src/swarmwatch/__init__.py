"""Observer and reconciler for filesystem-coordinated agent swarms."""

__version__ = "0.1.0"
