"""Incorporation status classification and the place registry it reads."""
