"""Configuration package for ParkingDirekt."""
from .app_config import AppSettings, get_app_settings

__all__ = ["AppSettings", "get_app_settings"]
