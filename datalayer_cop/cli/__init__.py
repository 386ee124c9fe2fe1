"""Command-line interface for DataLayer Cop."""

from .main import app

__all__ = ["app"]
