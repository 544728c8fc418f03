"""Source clients."""
