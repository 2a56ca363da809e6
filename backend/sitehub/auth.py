"""
Caller identity for API routes.

Session handling lives in front of this service; requests reach us with the
authenticated user's id in the X-User-Id header.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlmodel import Session

from sitehub.database import get_session
from sitehub.models.user import User


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    session: Session = Depends(get_session),
) -> User:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")

    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header")

    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user
