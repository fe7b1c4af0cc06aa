"""Database infrastructure - SQLite storage for finished runs."""

from .repository import RunRepository
from .schema import RUNS_SCHEMA

__all__ = [
    "RUNS_SCHEMA",
    "RunRepository",
]
