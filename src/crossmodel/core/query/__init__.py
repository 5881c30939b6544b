"""Query compilation, federation and merge execution."""
