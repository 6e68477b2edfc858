"""Todo modular monolith backend."""

__version__ = "0.1.0"
