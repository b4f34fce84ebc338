import io
import math
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from hrops.core.config import settings
from hrops.core.exceptions import BadRequestError
from hrops.core.schemas import ApiResponse
from hrops.database import get_db
from hrops.models.approval import Approval, ApprovalStatus
from hrops.models.user import User
from hrops.routers.auth_deps import get_current_user, require_admin
from hrops.schemas.approval import (
    ApprovalCreate, ApprovalDetailResponse, ApprovalFilters, ApprovalResponse, ApprovalStats,
    ApprovalUpdate, BulkDecisionRequest, BulkDecisionResult, BulkIdsRequest, CommentCreate,
    CommentResponse, DecisionRequest, HistoryResponse,
)
from hrops.services.approval_service import ApprovalService
from hrops.services.approval_stats import ApprovalStatsService
from hrops.services.export import approvals_to_csv, export_filename

router = APIRouter(prefix="/approvals", tags=["Approvals"])


def get_filters(
    status: Optional[str] = Query(None, description="Status or 'all'"),
    type: Optional[str] = Query(None, description="Approval type or 'all'"),
    priority: Optional[str] = Query(None, description="Priority or 'all'"),
    search: Optional[str] = Query(None, max_length=100),
    date_range: Optional[str] = Query(None, description="7days, 30days, 90days or all"),
    date_from: Optional[str] = Query(None, description="ISO date or timestamp"),
    date_to: Optional[str] = Query(None, description="ISO date (whole day included) or timestamp"),
) -> ApprovalFilters:
    return ApprovalFilters(
        status=status, type=type, priority=priority, search=search,
        date_range=date_range, date_from=date_from, date_to=date_to,
    )


def parse_if_match(value: Optional[str]) -> Optional[int]:
    """Accepts `3`, `"3"` and `W/"3"`."""
    if value is None:
        return None
    tag = value.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    tag = tag.strip('"')
    if not tag.isdigit():
        raise BadRequestError("If-Match must carry the approval version", details={"if_match": value})
    return int(tag)


def _detail(service: ApprovalService, approval: Approval, actor: User) -> ApprovalDetailResponse:
    return ApprovalDetailResponse.model_validate(approval).model_copy(update={
        "comments": [CommentResponse.model_validate(c) for c in service.visible_comments(approval, actor)],
        "history": [HistoryResponse.model_validate(h) for h in service.history_for(approval)],
    })


# ----------------------------------------------------------------------
# Collection
# ----------------------------------------------------------------------
@router.get("", response_model=ApiResponse[List[ApprovalResponse]])
def list_approvals(
    filters: ApprovalFilters = Depends(get_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.approvals.default_page_size, ge=1, le=settings.approvals.max_page_size),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items, total = ApprovalService(db).list_approvals(current_user, filters, page=page, limit=limit)
    return ApiResponse.ok(
        [ApprovalResponse.model_validate(a) for a in items],
        metadata={
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    )


@router.post("", response_model=ApiResponse[ApprovalResponse], status_code=status.HTTP_201_CREATED)
def create_approval(
    payload: ApprovalCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    approval = ApprovalService(db).create_approval(current_user, payload)
    return ApiResponse.ok(ApprovalResponse.model_validate(approval), message="Approval submitted successfully")


@router.get("/stats", response_model=ApiResponse[ApprovalStats])
def get_stats(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return ApiResponse.ok(ApprovalStatsService(db).get_statistics(current_user))


@router.get("/export")
def export_approvals(
    filters: ApprovalFilters = Depends(get_filters),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    approvals = ApprovalService(db).export_approvals(current_user, filters)
    content = approvals_to_csv(approvals)
    return StreamingResponse(
        io.BytesIO(content.encode("utf-8")),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


# ----------------------------------------------------------------------
# Bulk decisions
# ----------------------------------------------------------------------
@router.post("/bulk/decision", response_model=ApiResponse[BulkDecisionResult])
def bulk_decision(
    payload: BulkDecisionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin()),
):
    result = ApprovalService(db).bulk_decide(payload.approval_ids, current_user, payload.decision, notes=payload.notes)
    return ApiResponse.ok(result, message=f"{result.success} processed, {result.failed} failed")


@router.post("/bulk/approve", response_model=ApiResponse[BulkDecisionResult])
def bulk_approve(
    payload: BulkIdsRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin()),
):
    result = ApprovalService(db).bulk_decide(payload.approval_ids, current_user, ApprovalStatus.APPROVED, notes=payload.notes)
    return ApiResponse.ok(result, message=f"{result.success} approved, {result.failed} failed")


@router.post("/bulk/reject", response_model=ApiResponse[BulkDecisionResult])
def bulk_reject(
    payload: BulkIdsRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin()),
):
    result = ApprovalService(db).bulk_decide(payload.approval_ids, current_user, ApprovalStatus.REJECTED, notes=payload.notes)
    return ApiResponse.ok(result, message=f"{result.success} rejected, {result.failed} failed")


# ----------------------------------------------------------------------
# Single approval
# ----------------------------------------------------------------------
@router.get("/{ref}", response_model=ApiResponse[ApprovalDetailResponse])
def get_approval(ref: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    service = ApprovalService(db)
    approval = service.get_approval(ref, current_user)
    return ApiResponse.ok(_detail(service, approval, current_user))


@router.patch("/{ref}", response_model=ApiResponse[ApprovalResponse])
def update_approval(
    ref: str,
    payload: ApprovalUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    approval = ApprovalService(db).update_approval(ref, current_user, payload)
    return ApiResponse.ok(ApprovalResponse.model_validate(approval), message="Approval updated")


@router.patch("/{ref}/decision", response_model=ApiResponse[ApprovalResponse])
def decide_approval(
    ref: str,
    payload: DecisionRequest,
    if_match: Optional[str] = Header(None, alias="If-Match"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin()),
):
    header_version = parse_if_match(if_match)
    if payload.version is not None and header_version is not None and payload.version != header_version:
        raise BadRequestError("Body version and If-Match header disagree")
    expected = payload.version if payload.version is not None else header_version

    approval = ApprovalService(db).decide(
        ref, current_user, payload.decision, notes=payload.notes, expected_version=expected
    )
    return ApiResponse.ok(
        ApprovalResponse.model_validate(approval),
        message=f"Approval {approval.status.value.lower()} successfully",
    )


@router.delete("/{ref}", response_model=ApiResponse[ApprovalResponse])
def cancel_approval(
    ref: str,
    reason: Optional[str] = Query(None, max_length=2000),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    approval = ApprovalService(db).cancel(ref, current_user, reason=reason)
    return ApiResponse.ok(ApprovalResponse.model_validate(approval), message="Approval cancelled")


@router.get("/{ref}/history", response_model=ApiResponse[List[HistoryResponse]])
def get_history(ref: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    service = ApprovalService(db)
    approval = service.get_approval(ref, current_user)
    return ApiResponse.ok([HistoryResponse.model_validate(h) for h in service.history_for(approval)])


@router.get("/{ref}/comments", response_model=ApiResponse[List[CommentResponse]])
def list_comments(ref: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    service = ApprovalService(db)
    approval = service.get_approval(ref, current_user)
    return ApiResponse.ok([CommentResponse.model_validate(c) for c in service.visible_comments(approval, current_user)])


@router.post("/{ref}/comments", response_model=ApiResponse[CommentResponse], status_code=status.HTTP_201_CREATED)
def add_comment(
    ref: str,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    comment = ApprovalService(db).add_comment(ref, current_user, payload.comment, is_internal=payload.is_internal)
    return ApiResponse.ok(CommentResponse.model_validate(comment), message="Comment added")
