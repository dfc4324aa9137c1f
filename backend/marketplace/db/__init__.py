"""Database Declarations — the SQLAlchemy declarative Base shared by every model.

Invariants:
    - All models inherit from db.base.Base; Alembic and test fixtures read its metadata

Design Decisions:
    - Engine and sessions live in infrastructure/database.py, not here
"""
