"""Shared API dependencies for authentication and service wiring."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from quandary.core.security import InvalidTokenError, decode_access_token
from quandary.db.session import get_db
from quandary.models import User
from quandary.repositories import UserRepository
from quandary.services import (
    BadgeEvaluator,
    QuestionService,
    RealtimeGateway,
    UserProgressionEngine,
    VoteLedger,
)

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Get the current authenticated user from JWT token.

    Args:
        credentials: HTTP Bearer token credentials
        db: Database session

    Returns:
        User object for the authenticated user

    Raises:
        HTTPException: If token is invalid or the user is missing or inactive
    """
    try:
        user_id = decode_access_token(credentials.credentials)
    except InvalidTokenError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    user = UserRepository(db).get_active(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


# Type alias for current user dependency
CurrentUserDep = Annotated[User, Depends(get_current_user)]


def require_admin(current_user: CurrentUserDep) -> User:
    """Reject callers without the admin role."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


AdminUserDep = Annotated[User, Depends(require_admin)]


def get_gateway(request: Request) -> RealtimeGateway:
    """Return the realtime gateway created at application start."""
    return request.app.state.realtime


GatewayDep = Annotated[RealtimeGateway, Depends(get_gateway)]


def get_vote_ledger(db: SessionDep) -> VoteLedger:
    return VoteLedger(db, UserProgressionEngine(db), BadgeEvaluator(db))


def get_question_service(db: SessionDep) -> QuestionService:
    return QuestionService(db, UserProgressionEngine(db), BadgeEvaluator(db))


VoteLedgerDep = Annotated[VoteLedger, Depends(get_vote_ledger)]
QuestionServiceDep = Annotated[QuestionService, Depends(get_question_service)]
