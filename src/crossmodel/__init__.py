"""crossmodel - cross-source query compiler and join-discovery engine."""

__version__ = "0.1.0"
