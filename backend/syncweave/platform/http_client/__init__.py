"""HTTP client wrappers."""
