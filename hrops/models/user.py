"""
User model and role tiers.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean
from sqlalchemy.sql import func
import enum
from hrops.database import Base


class UserRole(str, enum.Enum):
    """
    Role tiers, most to least privileged.

    - SUPERADMIN: platform owner, manages users
    - ADMIN: decides approvals, reads everything
    - EMPLOYEE: self-service, sees only their own requests
    """
    SUPERADMIN = "SUPERADMIN"
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"


APPROVER_ROLES = [UserRole.SUPERADMIN, UserRole.ADMIN]


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    avatar = Column(String, nullable=True)

    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def can_approve(self) -> bool:
        """Check if user can decide approval requests."""
        return self.role in APPROVER_ROLES
