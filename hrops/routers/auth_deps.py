"""
RBAC Dependencies.
Resolves the bearer token to a user and gates endpoints by role.
"""
import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from typing import Callable, List
from hrops.core.config import settings
from hrops.database import get_db
from hrops.models.user import User, UserRole, APPROVER_ROLES
from hrops.services import auth as auth_service
from hrops.schemas.auth import TokenData

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.api_prefix}/auth/login")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """
    Extracts and validates the current user from the JWT token.
    """
    payload = auth_service.decode_access_token(token)

    if payload is None:
        logger.warning("Authentication failed: Invalid token")
        raise _unauthorized("Could not validate credentials")

    if payload.get("error") == "TOKEN_EXPIRED":
        logger.info("Authentication failed: Token expired")
        raise _unauthorized("TOKEN_EXPIRED")

    if payload.get("type") != "access":
        logger.warning("Authentication failed: Invalid token type")
        raise _unauthorized("Invalid token type")

    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        logger.warning("Authentication failed: Missing subject in token")
        raise _unauthorized("Missing subject in token")

    token_data = TokenData(user_id=int(subject), email=payload.get("email"), role=payload.get("role"))
    user = db.get(User, token_data.user_id)

    if user is None:
        logger.warning(f"Authentication failed: User {token_data.user_id} not found in database")
        raise _unauthorized("User not found")
    if not user.is_active:
        logger.warning(f"Authentication failed: User {user.email} is inactive")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive"
        )
    return user


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks if the user has one of the allowed roles.

    Usage:
        @router.patch("/{id}/decision")
        def decide(user: User = Depends(require_role([UserRole.ADMIN, UserRole.SUPERADMIN]))):
            ...
    """
    def role_checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            logger.info(
                f"Access denied for user {current_user.id}",
                extra={"role": current_user.role.value, "required": [r.value for r in allowed_roles]},
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. You do not have permission to perform this action."
            )
        return current_user
    return role_checker


def require_admin():
    """Shorthand for the roles that may decide approvals."""
    return require_role(APPROVER_ROLES)


def require_superadmin():
    return require_role([UserRole.SUPERADMIN])
