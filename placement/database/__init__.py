"""
Database Module

This module provides database configuration for the placement test backend.
"""

from placement.database.base import Base, ModelBase, metadata

__all__ = ['Base', 'ModelBase', 'metadata']
