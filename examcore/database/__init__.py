"""
Database Module

This module provides the SQLAlchemy models, engine setup and repositories
backing the assessment engine.
"""

from examcore.database.base import Base, ModelBase, metadata

__all__ = ['Base', 'ModelBase', 'metadata']
