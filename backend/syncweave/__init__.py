"""Syncweave: durable connector synchronization orchestration."""
