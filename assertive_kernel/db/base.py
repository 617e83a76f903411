"""
Module: assertive_kernel.db.base
Responsibility: Declarative base class for the SQLAlchemy ORM models and the
    type annotation map that keeps column types consistent.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, domain/, or outer layers.

Invariants enforced:
    - Timestamps are timezone-aware: datetime maps to DateTime(timezone=True).
    - Record payloads are canonical-codec JSON stored as Text; the ORM never
      sees domain objects.
"""

from datetime import date, datetime
from typing import ClassVar

from sqlalchemy import Date, DateTime, Integer, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - datetime maps to DateTime(timezone=True) -- always timezone-aware.
        - date maps to Date.
        - int maps to Integer.
        - str maps to Text unless a column declares a length.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        date: Date,
        int: Integer,
        str: Text,
    }
