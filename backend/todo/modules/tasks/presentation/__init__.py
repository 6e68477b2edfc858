"""Tasks REST endpoints."""
