"""
auth.py — Resolve the calling user from a Supabase access token.

Sessions and sign-in live in Supabase Auth; this module only answers
"who is the caller", returning a user id or None.
"""

import logging
from typing import Optional

from fastapi import Header
from supabase import AuthApiError, AuthSessionMissingError

from farm_monitor.supabase_service import init_supabase

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def resolve_user_id(token: str) -> Optional[str]:
    """
    Look the token up in Supabase Auth.

    A rejected token means an anonymous caller.  Transport failures
    (AuthRetryableError, network errors) propagate.
    """
    sb = init_supabase()
    try:
        response = sb.auth.get_user(token)
    except (AuthApiError, AuthSessionMissingError) as e:
        logger.warning("Token rejected by Supabase Auth: %s", e)
        return None

    user = getattr(response, "user", None)
    return str(user.id) if user else None


async def get_current_user_id(
    authorization: Optional[str] = Header(None),
) -> Optional[str]:
    """FastAPI dependency: caller's user id, or None when anonymous."""
    token = _bearer_token(authorization)
    if token is None:
        return None
    return resolve_user_id(token)
