# src/__init__.py — v1
"""stagegate: staged content pipeline executor with a publish quality gate."""

from stagegate.version import __version__

__all__ = ["__version__"]
