"""
Caller identity.

Session issuance lives in the auth service; requests reaching this API carry
the authenticated user id in the ``X-User-Id`` header.
"""
from typing import Optional

from fastapi import Header, HTTPException


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id.strip()
