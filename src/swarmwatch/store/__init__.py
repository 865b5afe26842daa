"""Readers and writers for coordination artifacts."""
