import logging
from contextlib import contextmanager
from sqlalchemy.orm import Session


class BaseService:
    """
    Common plumbing for services that own a unit of work on a Session.
    """

    def __init__(self, db: Session):
        self.db = db
        self._logger = logging.getLogger(self.__class__.__module__)

    @contextmanager
    def transaction(self):
        """Commit on success, roll back and re-raise on any failure."""
        try:
            yield self.db
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra=extra or None)

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra=extra or None)
