"""Document backends."""
