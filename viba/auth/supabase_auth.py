"""Supabase JWT validation dependency for FastAPI."""

from typing import Optional

from fastapi import Header, HTTPException
from pydantic import BaseModel
from supabase import create_client

from viba.config import settings


class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None


async def verify_jwt(authorization: str = Header(None)) -> CurrentUser:
    """Validate the Supabase JWT from the Authorization header.

    Returns the authenticated caller; its id owns history records and jobs.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid token")

    token = authorization.replace("Bearer ", "", 1)
    try:
        client = create_client(settings.supabase_url, settings.supabase_anon_key)
        user = client.auth.get_user(token).user
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return CurrentUser(id=str(user.id), email=getattr(user, "email", None))
