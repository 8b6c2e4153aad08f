"""Canonical hashing, data model, configuration and shared plumbing."""
