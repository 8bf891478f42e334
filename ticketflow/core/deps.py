"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ticketflow.core.security import decode_session_token
from ticketflow.db.session import SessionLocal
from ticketflow.schemas.auth import TokenPayload, UserSession


# Cookie and header names
COOKIE_NAME = "ticketflow_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_session(request: Request, db: Session = Depends(get_db)) -> UserSession:
    """
    Resolve the caller from the session cookie.

    Validates:
    - Session cookie exists
    - JWT is valid and not expired
    - User exists, is active and belongs to the token's company
    - Token version matches (for revocation support)

    Raises:
        HTTPException 401: Authentication failed
    """
    from ticketflow.db.models import User

    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = TokenPayload.model_validate(decode_session_token(token))
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid session")

    user = db.get(User, payload.sub)
    if not user or user.company_id != payload.company_id:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")
    if payload.token_version != user.token_version:
        raise HTTPException(status_code=401, detail="Session revoked")

    return UserSession(
        user_id=user.id,
        company_id=user.company_id,
        profile=user.profile,
        name=user.name,
    )


def require_admin(session: UserSession = Depends(get_current_session)) -> UserSession:
    """Admin-only endpoints."""
    if not session.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return session


def require_csrf_header(request: Request) -> None:
    """
    Require the X-Requested-With header on state-changing requests.

    Browsers cannot set it cross-site without a CORS preflight.
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing or invalid {CSRF_HEADER} header",
        )
