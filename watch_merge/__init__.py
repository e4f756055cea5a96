"""Watch history consolidation and backup merge."""

__version__ = "0.1.0"
