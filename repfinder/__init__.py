"""California representative resolution engine."""
