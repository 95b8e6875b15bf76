"""External editor bridge for browser extensions."""
