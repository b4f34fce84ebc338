import logging
from typing import Optional

from sqlalchemy.orm import Session

from hrops.core.config import settings
from hrops.database import SessionLocal
from hrops.models.user import User, UserRole
from hrops.services import auth as auth_service

logger = logging.getLogger(__name__)


def ensure_superadmin(db: Session, email: str, password: str, first_name: str = "System", last_name: str = "Administrator") -> Optional[User]:
    """Create a SUPERADMIN unless a user with that email already exists."""
    email = email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        logger.info(f"Bootstrap admin '{email}' already exists, skipping.")
        return None

    user = User(
        email=email,
        hashed_password=auth_service.get_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        role=UserRole.SUPERADMIN,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"✓ Created SUPERADMIN {email}", extra={"user_id": user.id})
    return user


def init_system_data():
    """
    Checks if the system needs initialization.
    When BOOTSTRAP_ADMIN_EMAIL and BOOTSTRAP_ADMIN_PASSWORD are set, makes
    sure that SUPERADMIN exists.
    """
    if not (settings.bootstrap_admin_email and settings.bootstrap_admin_password):
        logger.info("System initialization check: no bootstrap admin configured.")
        return

    db = SessionLocal()
    try:
        ensure_superadmin(db, settings.bootstrap_admin_email, settings.bootstrap_admin_password)
    except Exception:
        db.rollback()
        logger.error("Error during system initialization check", exc_info=True)
        raise
    finally:
        db.close()
