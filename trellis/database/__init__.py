"""DuckDB-backed storage for roadmap items."""

from .manager import DatabaseManager

__all__ = ["DatabaseManager"]
