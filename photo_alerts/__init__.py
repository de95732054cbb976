"""Alert rule evaluation and notification dispatch for the photo archive."""

__version__ = "0.1.0"
