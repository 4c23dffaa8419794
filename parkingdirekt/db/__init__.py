"""Database package for ParkingDirekt."""
from .connection import DatabaseConnectionManager, init_db

__all__ = [
    "DatabaseConnectionManager",
    "init_db",
]
