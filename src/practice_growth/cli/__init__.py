"""Command-line interface for the growth engine."""

from .main import cli

__all__ = ["cli"]
