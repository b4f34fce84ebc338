from sqlalchemy import Column, Integer, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from hrops.core.time import utc_now
from hrops.database import Base


class ApprovalComment(Base):
    __tablename__ = "approval_comments"

    id = Column(Integer, primary_key=True, index=True)
    approval_id = Column(Integer, ForeignKey("approvals.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    comment = Column(Text, nullable=False)
    is_internal = Column(Boolean, default=False, nullable=False)  # hidden from employees
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    approval = relationship("Approval", back_populates="comments")
    user = relationship("User")

    @property
    def user_name(self) -> str:
        return self.user.full_name if self.user else None
