"""Shared kernel: configuration, errors, logging, contracts and dispatch."""
