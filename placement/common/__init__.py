"""
Common infrastructure shared by the placement test backend:
logging, exceptions, serialization and small utilities.
"""

from placement.common.logger import app_logger, get_logger, LoggerAdapter
from placement.common.exceptions import (
    BaseError,
    DatabaseError,
    ValidationError,
    ConfigurationError,
    NotFoundError,
    DuplicateError
)

__all__ = [
    'app_logger',
    'get_logger',
    'LoggerAdapter',
    'BaseError',
    'DatabaseError',
    'ValidationError',
    'ConfigurationError',
    'NotFoundError',
    'DuplicateError'
]
