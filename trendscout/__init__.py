"""TrendScout: trend discovery and lifecycle scoring."""

__version__ = "0.1.0"
