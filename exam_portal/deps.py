"""Shared FastAPI dependencies for database access and authorization."""

from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.models import User


def get_current_user(
    request: Request, session: Session = Depends(get_session)
) -> Optional[User]:
    """Return the user resolved by the auth layer from the session cookie, if any."""
    user_id = request.session.get("user_id")
    if not user_id:
        return None

    user = session.get(User, user_id)
    if not user or not user.is_active or user.status == "suspended":
        # Clear any stale session
        request.session.clear()
        return None
    return user


def require_login(current_user: Optional[User] = Depends(get_current_user)) -> User:
    """Ensure that a user is logged in."""
    if current_user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return current_user


def require_role(required_roles: list[str]):
    """Dependency factory that enforces one of the given roles."""

    def wrapper(current_user: User = Depends(require_login)) -> User:
        if current_user.role not in required_roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return current_user

    return wrapper


def ensure_self_or_staff(current_user: User, user_id: int) -> None:
    """Students may only act on their own records; evaluators and admins on anyone's."""
    if current_user.role == "student" and current_user.id != user_id:
        raise HTTPException(status_code=403, detail="Forbidden")
