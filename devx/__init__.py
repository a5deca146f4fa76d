"""devx — local container stack lifecycle manager."""

__version__ = "0.1.0"
