"""Upstream collaborators: HTTP providers and curated registries."""
