"""
Approval workflow: submission, edits, decisions, withdrawal and comments.

Every state change and the history row describing it are written in one
transaction. Rows are read FOR UPDATE where the database supports it, and the
ORM version counter on ``Approval`` turns a lost update into a
``VersionConflictError`` instead of a silent overwrite.
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session
from sqlalchemy.orm.exc import StaleDataError

from hrops.core.config import settings
from hrops.core.exceptions import (
    AccessDeniedError, AppException, ApprovalAlreadyProcessedError,
    BadRequestError, NotFoundError, VersionConflictError,
)
from hrops.core.security import LIKE_ESCAPE, like_pattern, sanitize_input
from hrops.core.time import as_utc, range_start, utc_now
from hrops.models.approval import Approval, ApprovalStatus, DECISIONS
from hrops.models.approval_comment import ApprovalComment
from hrops.models.approval_history import ApprovalHistory, HistoryAction
from hrops.models.user import User, UserRole
from hrops.schemas.approval import (
    ApprovalCreate, ApprovalFilters, ApprovalRef, ApprovalUpdate, BulkDecisionResult, BulkFailure,
)
from hrops.services.base import BaseService


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "isoformat"):
        return as_utc(value).isoformat() if hasattr(value, "tzinfo") else value.isoformat()
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    return str(value)


def snapshot(approval: Approval) -> Dict[str, Any]:
    return {
        "title": approval.title,
        "description": approval.description,
        "amount": str(approval.amount) if approval.amount is not None else None,
        "currency": approval.currency,
        "priority": _json_safe(approval.priority),
        "notes": approval.notes,
        "due_date": _json_safe(approval.due_date),
        "attachments": list(approval.attachments or []),
        "metadata": approval.extra_data,
    }


class ApprovalService(BaseService):

    def __init__(self, db: Session, allow_redecision: Optional[bool] = None):
        super().__init__(db)
        self._allow_redecision = allow_redecision

    @property
    def allow_redecision(self) -> bool:
        if self._allow_redecision is not None:
            return self._allow_redecision
        return settings.approvals.allow_redecision

    # ------------------------------------------------------------------
    # Lookup and visibility
    # ------------------------------------------------------------------
    def resolve(self, ref: ApprovalRef, for_update: bool = False) -> Approval:
        """Find an approval by primary key or by its APR code."""
        query = self.db.query(Approval)
        if isinstance(ref, int) or (isinstance(ref, str) and ref.strip().isdigit()):
            query = query.filter(Approval.id == int(ref))
        else:
            query = query.filter(Approval.approval_code == str(ref).strip().upper())
        if for_update:
            query = query.with_for_update()
        approval = query.first()
        if approval is None:
            raise NotFoundError("Approval", ref)
        return approval

    @staticmethod
    def ensure_can_view(approval: Approval, actor: User) -> None:
        if actor.role == UserRole.EMPLOYEE and approval.submitter_id != actor.id:
            raise AccessDeniedError("You do not have permission to view this approval")

    def get_approval(self, ref: ApprovalRef, actor: User) -> Approval:
        approval = self.resolve(ref)
        self.ensure_can_view(approval, actor)
        return approval

    def visible_comments(self, approval: Approval, actor: User) -> List[ApprovalComment]:
        query = self.db.query(ApprovalComment).filter(ApprovalComment.approval_id == approval.id)
        if not actor.can_approve:
            query = query.filter(ApprovalComment.is_internal.is_(False))
        return query.order_by(ApprovalComment.created_at.desc(), ApprovalComment.id.desc()).all()

    def history_for(self, approval: Approval) -> List[ApprovalHistory]:
        return (
            self.db.query(ApprovalHistory)
            .filter(ApprovalHistory.approval_id == approval.id)
            .order_by(ApprovalHistory.created_at.desc(), ApprovalHistory.id.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------
    def scoped_query(self, actor: User) -> Query:
        query = self.db.query(Approval)
        if actor.role == UserRole.EMPLOYEE:
            query = query.filter(Approval.submitter_id == actor.id)
        return query

    def filtered_query(self, actor: User, filters: ApprovalFilters) -> Query:
        query = self.scoped_query(actor)
        if filters.status:
            query = query.filter(Approval.status == filters.status)
        if filters.type:
            query = query.filter(Approval.type == filters.type)
        if filters.priority:
            query = query.filter(Approval.priority == filters.priority)
        if filters.search:
            pattern = like_pattern(filters.search)
            query = query.filter(or_(
                Approval.title.ilike(pattern, escape=LIKE_ESCAPE),
                Approval.approval_code.ilike(pattern, escape=LIKE_ESCAPE),
                Approval.submitter_name.ilike(pattern, escape=LIKE_ESCAPE),
                Approval.description.ilike(pattern, escape=LIKE_ESCAPE),
            ))
        if filters.date_range:
            query = query.filter(Approval.submitted_date >= range_start(filters.date_range))
        if filters.date_from:
            query = query.filter(Approval.submitted_date >= as_utc(filters.date_from))
        if filters.date_to and filters.date_to_is_day:
            day_after = as_utc(filters.date_to) + timedelta(days=1)
            query = query.filter(Approval.submitted_date < day_after)
        elif filters.date_to:
            query = query.filter(Approval.submitted_date <= as_utc(filters.date_to))
        # Most recent first; id breaks ties between identical timestamps
        return query.order_by(Approval.submitted_date.desc(), Approval.id.desc())

    def list_approvals(
        self, actor: User, filters: ApprovalFilters, page: int = 1, limit: Optional[int] = None
    ) -> Tuple[List[Approval], int]:
        limit = min(limit or settings.approvals.default_page_size, settings.approvals.max_page_size)
        query = self.filtered_query(actor, filters)
        total = query.order_by(None).count()
        items = query.offset((page - 1) * limit).limit(limit).all()
        return items, total

    def export_approvals(self, actor: User, filters: ApprovalFilters) -> List[Approval]:
        return self.filtered_query(actor, filters).all()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def _record(
        self,
        approval: Approval,
        actor: User,
        action: HistoryAction,
        changes: Optional[Dict[str, Any]] = None,
        old_value: Optional[Dict[str, Any]] = None,
        new_value: Optional[Dict[str, Any]] = None,
    ) -> ApprovalHistory:
        entry = ApprovalHistory(
            approval_id=approval.id,
            user_id=actor.id,
            action=action,
            changes=_json_safe(changes),
            old_value=old_value,
            new_value=new_value,
            created_at=utc_now(),
        )
        self.db.add(entry)
        return entry

    def create_approval(self, submitter: User, data: ApprovalCreate) -> Approval:
        amount = data.amount
        currency = (data.currency or settings.default_currency) if amount is not None else None

        approval = Approval(
            type=data.type,
            title=data.title,
            description=data.description,
            amount=amount,
            currency=currency,
            priority=data.priority,
            status=ApprovalStatus.PENDING,
            submitter_id=submitter.id,
            submitter_name=submitter.full_name,
            submitter_email=submitter.email,
            submitted_date=utc_now(),
            notes=data.notes,
            due_date=data.due_date,
            attachments=[str(url) for url in data.attachments],
            extra_data=data.metadata,
        )
        with self.transaction():
            self.db.add(approval)
            self.db.flush()  # assigns id and approval_code
            self._record(approval, submitter, HistoryAction.CREATED, changes={
                "status": ApprovalStatus.PENDING.value,
                "type": data.type.value,
                "title": data.title,
                "amount": str(amount) if amount is not None else None,
                "currency": currency,
                "priority": data.priority.value,
            })

        self.log_info(
            f"Approval {approval.approval_code} submitted",
            approval_id=approval.id, submitter_id=submitter.id, approval_type=data.type.value,
        )
        return approval

    def update_approval(self, ref: ApprovalRef, actor: User, data: ApprovalUpdate) -> Approval:
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise BadRequestError("No changes supplied")

        code = None
        try:
            with self.transaction():
                approval = self.resolve(ref, for_update=True)
                code = approval.approval_code
                if approval.submitter_id != actor.id:
                    raise AccessDeniedError("You do not have permission to update this approval")
                if approval.status != ApprovalStatus.PENDING:
                    raise ApprovalAlreadyProcessedError(code, approval.status.value)

                before = snapshot(approval)
                self._apply_changes(approval, changes)
                after = snapshot(approval)
                changed = sorted(k for k in after if after[k] != before[k])
                if changed:
                    self._record(
                        approval, actor, HistoryAction.UPDATED,
                        changes={"fields": changed},
                        old_value={k: before[k] for k in changed},
                        new_value={k: after[k] for k in changed},
                    )
                self.db.flush()
        except StaleDataError as e:
            raise VersionConflictError(code or str(ref)) from e

        self.log_info(f"Approval {code} updated", approval_id=approval.id, actor_id=actor.id)
        return approval

    def _apply_changes(self, approval: Approval, changes: Dict[str, Any]) -> None:
        for field in ("title", "description", "priority", "notes", "due_date"):
            if field in changes:
                setattr(approval, field, changes[field])
        if "attachments" in changes:
            approval.attachments = [str(url) for url in (changes["attachments"] or [])]
        if "metadata" in changes:
            approval.extra_data = changes["metadata"]

        if "amount" in changes:
            approval.amount = changes["amount"]
            if changes["amount"] is None:
                approval.currency = None
            else:
                approval.currency = changes.get("currency") or approval.currency or settings.default_currency
        elif changes.get("currency") and approval.amount is not None:
            approval.currency = changes["currency"]

    def _check_can_decide(self, approval: Approval, decision: ApprovalStatus) -> None:
        if approval.status == ApprovalStatus.PENDING:
            return
        if (
            self.allow_redecision
            and approval.status in DECISIONS
            and approval.status != decision
        ):
            return
        raise ApprovalAlreadyProcessedError(approval.approval_code, approval.status.value)

    def decide(
        self,
        ref: ApprovalRef,
        actor: User,
        decision: Union[ApprovalStatus, str],
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Approval:
        decision = ApprovalStatus(decision)
        if decision not in DECISIONS:
            raise BadRequestError("Decision must be either APPROVED or REJECTED")
        if not actor.can_approve:
            raise AccessDeniedError("Only administrators can decide approvals")

        code = None
        try:
            with self.transaction():
                approval = self.resolve(ref, for_update=True)
                code = approval.approval_code
                self._check_can_decide(approval, decision)
                if expected_version is not None and approval.version != expected_version:
                    raise VersionConflictError(code, expected_version, approval.version)

                previous = approval.status
                decided_at = utc_now()
                approval.status = decision
                approval.approver_id = actor.id
                approval.approver_name = actor.full_name
                approval.approved_date = decided_at
                if notes:
                    approval.notes = notes

                self._record(approval, actor, HistoryAction(decision.value), changes={
                    "status": decision.value,
                    "previous_status": previous.value,
                    "approved_date": decided_at,
                    "notes": notes,
                })
                # Conditional UPDATE on the version column; raises StaleDataError if we lost a race
                self.db.flush()
        except StaleDataError as e:
            self.log_warning(f"Concurrent decision on approval {code}", approval_ref=str(ref), actor_id=actor.id)
            raise VersionConflictError(code or str(ref)) from e

        self.log_info(
            f"Approval {code} {decision.value.lower()}",
            approval_id=approval.id, actor_id=actor.id, decision=decision.value,
        )
        return approval

    def bulk_decide(
        self,
        refs: Sequence[ApprovalRef],
        actor: User,
        decision: Union[ApprovalStatus, str],
        notes: Optional[str] = None,
    ) -> BulkDecisionResult:
        """
        Apply ``decide`` to every ref on its own. One failure never rolls back
        the others; each outcome is reported back.
        """
        decision = ApprovalStatus(decision)
        result = BulkDecisionResult(decision=decision, success=0, failed=0)

        seen = set()
        for ref in refs:
            key = str(ref).strip().upper()
            if key in seen:
                continue
            seen.add(key)
            try:
                approval = self.decide(ref, actor, decision, notes=notes)
            except AppException as e:
                result.failed += 1
                result.errors.append(BulkFailure(approval_id=str(ref), code=e.error_code, message=e.message))
            except SQLAlchemyError as e:
                self._logger.exception(f"Bulk decision failed for approval {ref}")
                result.failed += 1
                result.errors.append(BulkFailure(approval_id=str(ref), code="DATABASE_ERROR", message=str(e.__class__.__name__)))
            else:
                result.success += 1
                result.succeeded.append(approval.approval_code)

        self.log_info(
            f"Bulk {decision.value.lower()}: {result.success} succeeded, {result.failed} failed",
            actor_id=actor.id, decision=decision.value,
        )
        return result

    def cancel(self, ref: ApprovalRef, actor: User, reason: Optional[str] = None) -> Approval:
        """Withdraw a pending approval. The row and its history are kept."""
        code = None
        try:
            with self.transaction():
                approval = self.resolve(ref, for_update=True)
                code = approval.approval_code
                if approval.submitter_id != actor.id and not actor.can_approve:
                    raise AccessDeniedError("You do not have permission to cancel this approval")
                if approval.status != ApprovalStatus.PENDING:
                    raise ApprovalAlreadyProcessedError(code, approval.status.value)

                cancelled_at = utc_now()
                approval.status = ApprovalStatus.CANCELLED
                approval.approver_id = actor.id
                approval.approver_name = actor.full_name
                approval.approved_date = cancelled_at
                if reason:
                    approval.notes = reason

                self._record(approval, actor, HistoryAction.CANCELLED, changes={
                    "status": ApprovalStatus.CANCELLED.value,
                    "approved_date": cancelled_at,
                    "reason": reason,
                })
                self.db.flush()
        except StaleDataError as e:
            raise VersionConflictError(code or str(ref)) from e

        self.log_info(f"Approval {code} cancelled", approval_id=approval.id, actor_id=actor.id)
        return approval

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------
    def add_comment(self, ref: ApprovalRef, actor: User, text: str, is_internal: bool = False) -> ApprovalComment:
        approval = self.get_approval(ref, actor)
        if is_internal and not actor.can_approve:
            raise AccessDeniedError("Only administrators can post internal comments")

        comment = ApprovalComment(
            approval_id=approval.id,
            user_id=actor.id,
            comment=sanitize_input(text),
            is_internal=is_internal,
            created_at=utc_now(),
        )
        with self.transaction():
            self.db.add(comment)
        self.db.refresh(comment)
        self.log_info(f"Comment added to {approval.approval_code}", approval_id=approval.id, actor_id=actor.id)
        return comment
