"""Core detection and redaction logic."""
