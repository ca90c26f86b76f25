"""Recipe Box: household recipes with an offline-first sync engine."""

__version__ = "0.4.0"
