"""Postal code geocoding with bundled ZIP fallback."""
