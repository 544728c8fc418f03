"""Sync helpers shared by activities."""
