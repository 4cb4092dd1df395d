"""Declarative base shared by every ORM model in the project."""

from __future__ import annotations

from sqlalchemy.orm import declarative_base

Base = declarative_base()
