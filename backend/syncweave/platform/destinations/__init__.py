"""Downstream destinations."""
