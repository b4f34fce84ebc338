from sqlalchemy import Column, Integer, DateTime, Enum, ForeignKey, JSON, event
from sqlalchemy.orm import relationship
import enum
from hrops.core.time import utc_now
from hrops.database import Base


class HistoryAction(str, enum.Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class AppendOnlyViolation(RuntimeError):
    pass


class ApprovalHistory(Base):
    """One row per lifecycle event of an approval. Never updated or deleted."""
    __tablename__ = "approval_history"

    id = Column(Integer, primary_key=True, index=True)
    approval_id = Column(Integer, ForeignKey("approvals.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    action = Column(Enum(HistoryAction), nullable=False)
    changes = Column(JSON, nullable=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    approval = relationship("Approval", back_populates="history")
    user = relationship("User")

    @property
    def user_name(self) -> str:
        return self.user.full_name if self.user else None


@event.listens_for(ApprovalHistory, "before_update")
def _reject_history_update(mapper, connection, target):
    raise AppendOnlyViolation(f"approval_history row {target.id} is append-only")


@event.listens_for(ApprovalHistory, "before_delete")
def _reject_history_delete(mapper, connection, target):
    raise AppendOnlyViolation(f"approval_history row {target.id} cannot be deleted")
