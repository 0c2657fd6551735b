"""
certauth Database Package

Connection and session management for the admin account store, using
SQLAlchemy.

Modules:
- engine: Database engine configuration and SessionLocal factory
- deps: Database session dependency for FastAPI

Usage:
    from certauth.db.engine import SessionLocal

    with SessionLocal() as session:
        # perform database operations
        pass

Environment Variables:
    DATABASE_URL: SQLAlchemy database connection URL
"""
