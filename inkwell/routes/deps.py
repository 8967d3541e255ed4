"""
Shared route dependencies.
"""
from typing import Optional

from fastapi import Header, HTTPException


async def get_owner_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Identity of the caller.

    Authentication happens upstream; the gateway forwards the verified user id
    in the X-User-Id header.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()
