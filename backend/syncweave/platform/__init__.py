"""Platform layer: sources, destinations, cursors and the Temporal orchestration."""
