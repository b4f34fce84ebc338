import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from hrops.core.config import settings
from hrops.core.exceptions import AuthenticationError
from hrops.core.limiter import limiter
from hrops.database import get_db
from hrops.models.user import User
from hrops.routers.auth_deps import get_current_user
from hrops.schemas.auth import LoginRequest, Token, UserResponse
from hrops.services import auth as auth_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)


@router.post("/login", response_model=Token)
@limiter.limit(settings.login_rate_limit)
def login(request: Request, login_data: LoginRequest, db: Session = Depends(get_db)):
    # JSON body rather than form-data for frontend compatibility
    user = auth_service.authenticate_user(db, login_data.email, login_data.password)
    if not user:
        logger.warning("Failed login", extra={"email": login_data.email})
        raise AuthenticationError("Incorrect email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is inactive")

    access_token = auth_service.create_user_token(user)
    logger.info(f"User {user.id} logged in", extra={"user_id": user.id})
    return Token(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.access_token_expire_minutes * 60,
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
def read_current_user(current_user: User = Depends(get_current_user)):
    return current_user
