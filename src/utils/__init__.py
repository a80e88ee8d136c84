"""Shared logging, error and validation helpers."""
