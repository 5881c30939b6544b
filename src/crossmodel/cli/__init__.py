"""Command-line interface for crossmodel."""
