"""Credentials for external sources."""
