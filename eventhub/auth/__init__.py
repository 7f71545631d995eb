"""
Authentication Module
Token decoding and role/ban dependencies
"""

from eventhub.auth.dependencies import (
    create_access_token,
    decode_access_token,
    get_current_identity,
    get_optional_identity,
    get_current_user,
    get_optional_user,
    get_active_user,
    get_admin_user,
    get_member_user,
)

__all__ = [
    "create_access_token",
    "decode_access_token",
    "get_current_identity",
    "get_optional_identity",
    "get_current_user",
    "get_optional_user",
    "get_active_user",
    "get_admin_user",
    "get_member_user",
]
