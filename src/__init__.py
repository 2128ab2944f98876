# src/__init__.py - v1
"""gapflow: staged report workflow engine."""

from gapflow.version import __version__

__all__ = ["__version__"]
