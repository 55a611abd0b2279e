# app/routers/auth.py
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from sqlmodel import Session

from app.core.auth import bearer_scheme, get_current_user, require_auth
from app.database import get_session
from app.models.user import User
from app.schemas.user import TokenCheck, UserRead

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("/verify-token", response_model=TokenCheck)
def verify_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
):
    """
    Report whether the bearer token is still accepted.

    Used by the client route guard; answers {"valid": false} instead of 401.
    """
    try:
        user = get_current_user(credentials, session)
    except HTTPException:
        return TokenCheck(valid=False)
    if user is None:
        return TokenCheck(valid=False)
    return TokenCheck(valid=True, role=user.role)


@router.get("/me", response_model=UserRead)
def get_me(current_user: User = Depends(require_auth)):
    """Return the authenticated user's profile."""
    return current_user
