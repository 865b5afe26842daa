"""Filesystem protocol types and IO helpers."""
