"""daylog: a personal learning journal with offline sync."""

__version__ = "0.1.0"
