"""saferedact — detection, reconciliation and redaction of sensitive data in documents."""

__version__ = "0.1.0"
