import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field, HttpUrl,
    computed_field, field_validator, model_validator,
)

from hrops.core.money import format_amount, normalize_currency, parse_amount
from hrops.core.time import as_utc, utc_now
from hrops.models.approval import ApprovalPriority, ApprovalStatus, ApprovalType
from hrops.models.approval_history import HistoryAction

# Either the numeric primary key or the public "APR-0001" code
ApprovalRef = Union[int, str]

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class AmountFields(BaseModel):
    """Shared amount handling: accepts numbers or legacy strings like "£100.00"."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    currency: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def split_amount(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if data.get("amount") is None or data.get("amount") == "":
            return {**data, "amount": None} if "amount" in data else data
        amount, implied = parse_amount(data["amount"])
        data = {**data, "amount": amount}
        explicit = data.get("currency")
        if implied and explicit and normalize_currency(explicit) != implied:
            raise ValueError(f"Amount is in {implied} but currency is {explicit}")
        if implied and not explicit:
            data["currency"] = implied
        return data

    @field_validator("currency")
    @classmethod
    def check_currency(cls, value: Optional[str]) -> Optional[str]:
        return normalize_currency(value) if value else None


class ApprovalCreate(AmountFields):
    type: ApprovalType
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=1, max_length=5000)
    priority: ApprovalPriority = ApprovalPriority.MEDIUM
    notes: Optional[str] = Field(default=None, max_length=2000)
    due_date: Optional[datetime] = None
    attachments: List[HttpUrl] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("due_date")
    @classmethod
    def due_date_not_in_past(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and as_utc(value) < utc_now():
            raise ValueError("Due date cannot be in the past")
        return value


class ApprovalUpdate(AmountFields):
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    priority: Optional[ApprovalPriority] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    due_date: Optional[datetime] = None
    attachments: Optional[List[HttpUrl]] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("due_date")
    @classmethod
    def due_date_not_in_past(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and as_utc(value) < utc_now():
            raise ValueError("Due date cannot be in the past")
        return value


class DecisionRequest(BaseModel):
    decision: Literal["APPROVED", "REJECTED"]
    notes: Optional[str] = Field(default=None, max_length=2000)
    version: Optional[int] = Field(default=None, ge=1)


class BulkDecisionRequest(BaseModel):
    approval_ids: List[ApprovalRef] = Field(min_length=1, max_length=100)
    decision: Literal["APPROVED", "REJECTED"]
    notes: Optional[str] = Field(default=None, max_length=2000)


class BulkIdsRequest(BaseModel):
    approval_ids: List[ApprovalRef] = Field(min_length=1, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=2000)


class CommentCreate(BaseModel):
    comment: str = Field(min_length=1, max_length=1000)
    is_internal: bool = False

    @field_validator("comment")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Comment is required")
        return value


class _UtcTimestamps(BaseModel):
    @field_validator("*", mode="after")
    @classmethod
    def naive_to_utc(cls, value: Any) -> Any:
        return as_utc(value) if isinstance(value, datetime) else value


class CommentResponse(_UtcTimestamps):
    model_config = ConfigDict(from_attributes=True)

    id: int
    approval_id: int
    user_id: int
    user_name: Optional[str] = None
    comment: str
    is_internal: bool
    created_at: datetime


class HistoryResponse(_UtcTimestamps):
    model_config = ConfigDict(from_attributes=True)

    id: int
    approval_id: int
    user_id: int
    user_name: Optional[str] = None
    action: HistoryAction
    changes: Optional[Dict[str, Any]] = None
    old_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    created_at: datetime


class ApprovalResponse(_UtcTimestamps):
    model_config = ConfigDict(from_attributes=True)

    id: int
    approval_code: str
    type: ApprovalType
    title: str
    description: str
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    status: ApprovalStatus
    priority: ApprovalPriority
    submitter_id: int
    submitter_name: str
    submitter_email: Optional[str] = None
    approver_id: Optional[int] = None
    approver_name: Optional[str] = None
    submitted_date: datetime
    approved_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("extra_data", "metadata")
    )
    version: int
    updated_at: Optional[datetime] = None

    @field_validator("attachments", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return value or []

    @computed_field
    @property
    def display_amount(self) -> Optional[str]:
        return format_amount(self.amount, self.currency)


class ApprovalDetailResponse(ApprovalResponse):
    comments: List[CommentResponse] = Field(default_factory=list)
    history: List[HistoryResponse] = Field(default_factory=list)


class BulkFailure(BaseModel):
    approval_id: str
    code: str
    message: str


class BulkDecisionResult(BaseModel):
    decision: ApprovalStatus
    success: int
    failed: int
    succeeded: List[str] = Field(default_factory=list)
    errors: List[BulkFailure] = Field(default_factory=list)


class ApprovalFilters(BaseModel):
    status: Optional[ApprovalStatus] = None
    type: Optional[ApprovalType] = None
    priority: Optional[ApprovalPriority] = None
    search: Optional[str] = None
    date_range: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    # Set when date_to was given as a bare day; the whole day is then included
    date_to_is_day: bool = False

    @model_validator(mode="before")
    @classmethod
    def mark_whole_day(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        date_to = data.get("date_to")
        if isinstance(date_to, str) and _DAY_RE.match(date_to.strip()):
            return {**data, "date_to_is_day": True}
        if isinstance(date_to, date) and not isinstance(date_to, datetime):
            return {**data, "date_to_is_day": True}
        return data

    @field_validator("status", "type", "priority", "date_range", mode="before")
    @classmethod
    def all_means_unset(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if value == "" or value.lower() == "all":
                return None
        return value

    @field_validator("search", "date_from", "date_to", mode="before")
    @classmethod
    def blank_means_unset(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("status", "type", "priority", mode="before")
    @classmethod
    def upper_case(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("date_range")
    @classmethod
    def known_range(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in ("7days", "30days", "90days"):
            raise ValueError("date_range must be one of 7days, 30days, 90days, all")
        return value


class CountWithChange(BaseModel):
    value: int
    change: int


class TypeBreakdown(BaseModel):
    type: ApprovalType
    label: str
    count: int
    percentage: int
    color: str


class ApprovalStats(BaseModel):
    total: CountWithChange
    approved: CountWithChange
    rejected: CountWithChange
    pending: int
    urgent_pending: int
    avg_response_days: float
    avg_response: str
    by_type: List[TypeBreakdown]
