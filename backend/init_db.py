#!/usr/bin/env python3
# backend/init_db.py
"""
Database initialization script.

Creates the users and transactions tables directly from the models.
Production databases should be migrated with alembic instead.

Run after installing the package:
    python backend/init_db.py
"""
from tradesim.database import engine
from tradesim.models import Base


def init_db() -> None:
    """Create all database tables defined in models."""
    print(f"Creating database tables on {engine.url.render_as_string(hide_password=True)}...")
    Base.metadata.create_all(bind=engine)
    print(f"Tables created successfully: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    init_db()
