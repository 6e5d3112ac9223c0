"""Build and link local packages into a consuming project."""
from __future__ import annotations

from .cli import main

__all__ = ["main"]
