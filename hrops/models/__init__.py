# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import user, approval, approval_history, approval_comment

# Explicit class exports for cleaner imports
from .user import User, UserRole
from .approval import Approval, ApprovalStatus, ApprovalType, ApprovalPriority
from .approval_history import ApprovalHistory, HistoryAction
from .approval_comment import ApprovalComment

__all__ = [
    "User",
    "UserRole",
    "Approval",
    "ApprovalStatus",
    "ApprovalType",
    "ApprovalPriority",
    "ApprovalHistory",
    "HistoryAction",
    "ApprovalComment",
]
