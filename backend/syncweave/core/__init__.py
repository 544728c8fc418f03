"""Core services, configuration and logging."""
