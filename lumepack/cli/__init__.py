"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import LumePackModalCLI, main

__all__ = ['LumePackModalCLI', 'main']
