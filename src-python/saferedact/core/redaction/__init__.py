"""Redaction coordination."""
