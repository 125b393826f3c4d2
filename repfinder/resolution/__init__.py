"""Cross-level name collision resolution."""
