from datetime import timedelta
from typing import Optional

from sqlalchemy import func

from hrops.core.time import as_utc, utc_now
from hrops.models.approval import Approval, ApprovalPriority, ApprovalStatus, ApprovalType
from hrops.models.user import User
from hrops.schemas.approval import ApprovalStats, CountWithChange, TypeBreakdown
from hrops.services.approval_service import ApprovalService
from hrops.services.base import BaseService

TYPE_COLORS = {
    ApprovalType.EXPENSE_CLAIM: "blue",
    ApprovalType.USER_ACCESS: "green",
    ApprovalType.CONTENT_PUBLISH: "purple",
    ApprovalType.PURCHASE_ORDER: "orange",
    ApprovalType.LEAVE_REQUEST: "pink",
    ApprovalType.BUDGET_INCREASE: "yellow",
    ApprovalType.EQUIPMENT_REQUEST: "indigo",
    ApprovalType.TRAINING_REQUEST: "teal",
}

WINDOW_DAYS = 30


class ApprovalStatsService(BaseService):
    """Dashboard figures: this 30-day window against the previous one."""

    def _scoped(self, actor: User):
        return ApprovalService(self.db).scoped_query(actor)

    def _window_counts(self, actor: User, column, status: Optional[ApprovalStatus], now) -> CountWithChange:
        current_start = now - timedelta(days=WINDOW_DAYS)
        previous_start = now - timedelta(days=2 * WINDOW_DAYS)
        base = self._scoped(actor)
        if status is not None:
            base = base.filter(Approval.status == status)
        current = base.filter(column >= current_start).count()
        previous = base.filter(column >= previous_start, column < current_start).count()
        return CountWithChange(value=current, change=current - previous)

    def get_statistics(self, actor: User) -> ApprovalStats:
        now = utc_now()

        total = self._window_counts(actor, Approval.submitted_date, None, now)
        approved = self._window_counts(actor, Approval.approved_date, ApprovalStatus.APPROVED, now)
        rejected = self._window_counts(actor, Approval.approved_date, ApprovalStatus.REJECTED, now)

        pending_query = self._scoped(actor).filter(Approval.status == ApprovalStatus.PENDING)
        pending = pending_query.count()
        urgent_pending = pending_query.filter(Approval.priority == ApprovalPriority.URGENT).count()

        decided = (
            self._scoped(actor)
            .with_entities(Approval.submitted_date, Approval.approved_date)
            .filter(
                Approval.status.in_([ApprovalStatus.APPROVED, ApprovalStatus.REJECTED]),
                Approval.approved_date.isnot(None),
            )
            .all()
        )
        avg_days = 0.0
        if decided:
            total_hours = sum(
                (as_utc(decided_at) - as_utc(submitted)).total_seconds() / 3600
                for submitted, decided_at in decided
            )
            avg_days = round(total_hours / len(decided) / 24, 1)

        by_type_rows = (
            self._scoped(actor)
            .with_entities(Approval.type, func.count(Approval.id))
            .group_by(Approval.type)
            .all()
        )
        type_total = sum(count for _, count in by_type_rows)
        by_type = [
            TypeBreakdown(
                type=approval_type,
                label=approval_type.label,
                count=count,
                percentage=int(count * 100 / type_total + 0.5) if type_total else 0,
                color=TYPE_COLORS.get(approval_type, "gray"),
            )
            for approval_type, count in sorted(by_type_rows, key=lambda row: (-row[1], row[0].value))
        ]

        return ApprovalStats(
            total=total,
            approved=approved,
            rejected=rejected,
            pending=pending,
            urgent_pending=urgent_pending,
            avg_response_days=avg_days,
            avg_response=f"{avg_days:.1f} days",
            by_type=by_type,
        )
