"""finwatch - budget threshold alerting and receipt extraction service."""

__version__ = "0.1.0"
