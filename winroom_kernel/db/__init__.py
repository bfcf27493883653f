"""Database layer: declarative base, engine/session management, dialect helpers."""
