"""Installation sanity checks for Fallout: New Vegas."""

__version__ = "1.0.0"
