"""Review API."""
