from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from hrops.core.schemas import ApiResponse
from hrops.database import get_db
from hrops.models.user import User, UserRole
from hrops.routers.auth_deps import require_admin, require_superadmin
from hrops.schemas.auth import UserCreate, UserResponse, UserStatusUpdate
from hrops.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("", response_model=ApiResponse[List[UserResponse]])
def list_users(
    role: Optional[UserRole] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin()),
):
    users = UserService(db).list_users(role=role, search=search)
    return ApiResponse.ok([UserResponse.model_validate(u) for u in users], metadata={"total": len(users)})


@router.post("", response_model=ApiResponse[UserResponse], status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_superadmin()),
):
    user = UserService(db).create_user(payload)
    return ApiResponse.ok(UserResponse.model_validate(user), message="User created successfully")


@router.get("/{user_id}", response_model=ApiResponse[UserResponse])
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin()),
):
    return ApiResponse.ok(UserResponse.model_validate(UserService(db).get(user_id)))


@router.patch("/{user_id}/status", response_model=ApiResponse[UserResponse])
def update_user_status(
    user_id: int,
    payload: UserStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_superadmin()),
):
    user = UserService(db).set_active(user_id, payload.is_active, actor=current_user)
    state = "activated" if user.is_active else "deactivated"
    return ApiResponse.ok(UserResponse.model_validate(user), message=f"User {state}")
