"""Command line interface for certreloader."""

from .main import cli, main

__all__ = ["cli", "main"]
