"""Core engine: adapters, catalog introspection, join discovery and query compilation."""
