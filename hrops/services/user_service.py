from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from hrops.core.exceptions import BadRequestError, ConflictError, NotFoundError
from hrops.core.security import LIKE_ESCAPE, like_pattern
from hrops.models.user import User, UserRole
from hrops.schemas.auth import UserCreate
from hrops.services import auth as auth_service
from hrops.services.base import BaseService


class UserService(BaseService):

    def get(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def list_users(self, role: Optional[UserRole] = None, search: Optional[str] = None) -> List[User]:
        query = self.db.query(User)
        if role:
            query = query.filter(User.role == role)
        if search:
            pattern = like_pattern(search.strip())
            query = query.filter(or_(
                User.email.ilike(pattern, escape=LIKE_ESCAPE),
                User.first_name.ilike(pattern, escape=LIKE_ESCAPE),
                User.last_name.ilike(pattern, escape=LIKE_ESCAPE),
            ))
        return query.order_by(User.created_at.desc(), User.id.desc()).all()

    def create_user(self, data: UserCreate) -> User:
        email = data.email.lower()
        if self.db.query(User).filter(User.email == email).first():
            raise ConflictError(f"A user with email {email} already exists", error_code="USER_EXISTS")

        user = User(
            email=email,
            hashed_password=auth_service.get_password_hash(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            avatar=data.avatar,
            role=data.role,
            is_active=True,
        )
        try:
            with self.transaction():
                self.db.add(user)
        except IntegrityError as e:
            raise ConflictError(f"A user with email {email} already exists", error_code="USER_EXISTS") from e
        self.db.refresh(user)
        self.log_info(f"Created user {user.id}", user_id=user.id, role=user.role.value)
        return user

    def set_active(self, user_id: int, is_active: bool, actor: User) -> User:
        user = self.get(user_id)
        if user.id == actor.id and not is_active:
            raise BadRequestError("You cannot deactivate your own account")
        with self.transaction():
            user.is_active = is_active
        self.db.refresh(user)
        self.log_info(f"User {user.id} active={is_active}", user_id=user.id, actor_id=actor.id)
        return user
