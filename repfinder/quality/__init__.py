"""Data-quality rules applied before anything is cached or returned."""
