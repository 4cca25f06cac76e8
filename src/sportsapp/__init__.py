"""SportsApp offline asset cache and query cache."""

__version__ = "0.1.0"
