from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, Enum, ForeignKey, JSON, Index
from sqlalchemy import event
from sqlalchemy.orm import relationship
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.sql import func
import enum
from hrops.core.config import settings
from hrops.core.time import utc_now
from hrops.database import Base


class ApprovalType(str, enum.Enum):
    EXPENSE_CLAIM = "EXPENSE_CLAIM"
    USER_ACCESS = "USER_ACCESS"
    CONTENT_PUBLISH = "CONTENT_PUBLISH"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    LEAVE_REQUEST = "LEAVE_REQUEST"
    BUDGET_INCREASE = "BUDGET_INCREASE"
    EQUIPMENT_REQUEST = "EQUIPMENT_REQUEST"
    TRAINING_REQUEST = "TRAINING_REQUEST"
    OTHER = "OTHER"

    @property
    def label(self) -> str:
        return " ".join(word.capitalize() for word in self.value.split("_"))


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class ApprovalPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# Decisions an approver can make; CANCELLED is reserved for withdrawal
DECISIONS = (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)


class Approval(Base):
    __tablename__ = "approvals"

    id = Column(Integer, primary_key=True, index=True)
    approval_code = Column(String(20), unique=True, index=True, nullable=True)  # "APR-0001", set after insert
    type = Column(Enum(ApprovalType), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)

    amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=True)

    status = Column(Enum(ApprovalStatus), default=ApprovalStatus.PENDING, nullable=False, index=True)
    priority = Column(Enum(ApprovalPriority), default=ApprovalPriority.MEDIUM, nullable=False, index=True)

    # Submitter (snapshot kept for search and display)
    submitter_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    submitter_name = Column(String(200), nullable=False)
    submitter_email = Column(String, nullable=True)

    # Decision
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approver_name = Column(String(200), nullable=True)
    approved_date = Column(DateTime(timezone=True), nullable=True)

    submitted_date = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    attachments = Column(JSON, default=list)
    extra_data = Column("metadata", JSON, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    submitter = relationship("User", foreign_keys=[submitter_id])
    approver = relationship("User", foreign_keys=[approver_id])
    history = relationship(
        "ApprovalHistory",
        back_populates="approval",
        order_by="desc(ApprovalHistory.id)",
    )
    comments = relationship(
        "ApprovalComment",
        back_populates="approval",
        order_by="desc(ApprovalComment.id)",
    )

    # Every UPDATE carries "WHERE version = :loaded"; a concurrent writer raises StaleDataError
    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_approvals_status_submitted", "status", "submitted_date"),
    )

    def __repr__(self):
        return f"<Approval {self.approval_code} {self.status.value}>"


def format_approval_code(approval_id: int) -> str:
    return f"{settings.approvals.code_prefix}-{approval_id:04d}"


@event.listens_for(Approval, "after_insert")
def assign_approval_code(mapper, connection, target):
    """Derive the public code from the primary key inside the inserting transaction."""
    code = format_approval_code(target.id)
    table = Approval.__table__
    connection.execute(
        table.update().where(table.c.id == target.id).values(approval_code=code)
    )
    # Written behind the mapper's back, so the version counter stays untouched
    set_committed_value(target, "approval_code", code)
