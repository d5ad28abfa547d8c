"""
Admin authentication.
"""

from .admin_auth import (
    hash_api_key,
    authenticate_token,
    require_admin_auth,
)

__all__ = [
    "hash_api_key",
    "authenticate_token",
    "require_admin_auth",
]
