"""Tasks application layer."""
