"""Step-kind metadata (node catalog)."""
