"""HTTP API for crossmodel."""
