"""SQLAlchemy declarative base and tenant-facing models.

This package hosts the SQLAlchemy models used across the backend. It exposes a
single declarative ``Base`` class that other modules can import when creating
tables. Individual models live in dedicated modules within this package.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


# Re-export tenant models so callers can import them via
# ``from app.models import Business`` instead of touching private modules.
from .tenant import Business, BusinessFaq, IntegrationCredentialRecord


__all__ = [
    "Base",
    "Business",
    "BusinessFaq",
    "IntegrationCredentialRecord",
]
