"""Script load inspector: correlates request lifecycles and explains blocks."""

__version__ = "0.1.0"
