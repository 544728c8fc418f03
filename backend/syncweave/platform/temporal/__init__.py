"""Temporal workflows, activities, dispatcher and worker."""
