"""
Authentication helpers.

Identity resolution happens in an upstream gateway; this package only turns
the forwarded bearer token into a user id for route handlers.
"""

from placement.common.auth.dependencies import get_current_user_id

__all__ = ['get_current_user_id']
