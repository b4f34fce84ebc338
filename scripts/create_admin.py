"""
Create a SUPERADMIN account.

Usage:
    python scripts/create_admin.py admin@example.com 'S3cure-Passw0rd' [First] [Last]

Email and password fall back to BOOTSTRAP_ADMIN_EMAIL / BOOTSTRAP_ADMIN_PASSWORD.
"""
import logging
import os
import sys

# Ensure we can import hrops modules
sys.path.append(os.getcwd())

from hrops.core.init_system import ensure_superadmin
from hrops.database import SessionLocal, init_db

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def create_admin_user(argv):
    email = argv[0] if len(argv) > 0 else os.getenv("BOOTSTRAP_ADMIN_EMAIL")
    password = argv[1] if len(argv) > 1 else os.getenv("BOOTSTRAP_ADMIN_PASSWORD")
    if not email or not password:
        logger.error("An email and a password are required.")
        return 2
    if len(password) < 8:
        logger.error("Password must be at least 8 characters.")
        return 2

    names = {}
    if len(argv) > 2:
        names["first_name"] = argv[2]
    if len(argv) > 3:
        names["last_name"] = argv[3]

    init_db()
    db = SessionLocal()
    try:
        user = ensure_superadmin(db, email, password, **names)
        if user is None:
            logger.warning(f"User '{email}' already exists.")
            return 1
        logger.info(f"SUPERADMIN {user.email} created (id={user.id}). You can now login.")
        return 0
    except Exception:
        db.rollback()
        logger.exception("Error creating admin user")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(create_admin_user(sys.argv[1:]))
