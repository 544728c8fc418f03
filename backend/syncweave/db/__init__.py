"""Database session and schema setup."""
