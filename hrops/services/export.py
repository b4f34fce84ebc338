import csv
import io
from datetime import date
from typing import Iterable, Optional

from hrops.core.money import format_amount
from hrops.core.time import as_utc
from hrops.models.approval import Approval

EXPORT_COLUMNS = ["ID", "Title", "Type", "Status", "Priority", "Amount", "Submitted", "Decided"]
MISSING = "-"
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _text_cell(value: Optional[str]) -> str:
    """Spreadsheets evaluate cells that open with a formula character; quote them as text."""
    if value and value.startswith(FORMULA_PREFIXES):
        return "'" + value
    return value or ""


def _timestamp(value) -> Optional[str]:
    return as_utc(value).isoformat() if value else None


def approvals_to_csv(approvals: Iterable[Approval]) -> str:
    """One quoted row per approval, in the order given."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for approval in approvals:
        writer.writerow([
            approval.approval_code,
            _text_cell(approval.title),
            approval.type.value,
            approval.status.value,
            approval.priority.value,
            format_amount(approval.amount, approval.currency) or MISSING,
            _timestamp(approval.submitted_date) or MISSING,
            _timestamp(approval.approved_date) or MISSING,
        ])
    return output.getvalue()


def export_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"approval-history-{today.isoformat()}.csv"
