"""Declarative base shared by all ParkingDirekt models."""
import uuid

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    """Primary key factory (string UUIDs keep SQLite and PostgreSQL identical)."""
    return str(uuid.uuid4())
