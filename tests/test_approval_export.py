import csv
import io
from datetime import date

from fastapi import status

from hrops.services.approval_service import ApprovalService
from hrops.services.export import EXPORT_COLUMNS, approvals_to_csv, export_filename


def _rows(response):
    return list(csv.reader(io.StringIO(response.text)))


def test_export_mirrors_filtered_list(client, db_session, admin_user, employee, make_approval, auth_headers):
    approvals = [make_approval(employee, title=f"Headset {i}") for i in range(3)]
    make_approval(employee, type="LEAVE_REQUEST", title="Long weekend", amount=None)
    ApprovalService(db_session).decide(approvals[1].id, admin_user, "APPROVED")
    headers = auth_headers(admin_user)
    params = {"type": "EXPENSE_CLAIM"}

    listed = client.get("/api/approvals", params={**params, "limit": 100}, headers=headers).json()["data"]
    response = client.get("/api/approvals/export", params=params, headers=headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.headers["content-type"].startswith("text/csv")
    assert f"approval-history-{date.today().isoformat()}.csv" in response.headers["content-disposition"]

    rows = _rows(response)
    assert rows[0] == EXPORT_COLUMNS
    assert [row[0] for row in rows[1:]] == [a["approval_code"] for a in listed]


def test_export_every_cell_quoted_and_missing_values_dashed(client, employee, make_approval, auth_headers):
    make_approval(employee, type="USER_ACCESS", title="VPN access", amount=None, priority="LOW")

    response = client.get("/api/approvals/export", headers=auth_headers(employee))

    lines = response.text.strip().split("\n")
    assert lines[0] == '"ID","Title","Type","Status","Priority","Amount","Submitted","Decided"'
    assert lines[1].startswith('"APR-0001","VPN access","USER_ACCESS","PENDING","LOW","-",')
    assert lines[1].endswith(',"-"')


def test_export_is_role_scoped(client, employee, other_employee, make_approval, auth_headers):
    make_approval(employee)
    make_approval(other_employee)

    rows = _rows(client.get("/api/approvals/export", headers=auth_headers(other_employee)))

    assert [row[0] for row in rows[1:]] == ["APR-0002"]


def test_approvals_to_csv_formats_amounts(db_session, admin_user, employee, make_approval):
    approval = make_approval(employee, amount="$1,250.50")
    ApprovalService(db_session).decide(approval.id, admin_user, "REJECTED")
    db_session.refresh(approval)

    rows = list(csv.reader(io.StringIO(approvals_to_csv([approval]))))

    assert rows[1][5] == "$1,250.50"
    assert rows[1][3] == "REJECTED"
    assert rows[1][7] != "-"


def test_export_filename():
    assert export_filename(date(2024, 3, 9)) == "approval-history-2024-03-09.csv"


def test_export_quotes_formula_like_titles_as_text(db_session, employee, make_approval):
    make_approval(employee, title="=SUM(A1:A9)")
    make_approval(employee, title="@ops offsite", amount=None)

    rows = list(csv.reader(io.StringIO(approvals_to_csv(ApprovalService(db_session).scoped_query(employee).all()))))

    titles = sorted(row[1] for row in rows[1:])
    assert titles == ["'=SUM(A1:A9)", "'@ops offsite"]
    assert [row[5] for row in rows[1:] if row[1] == "'@ops offsite"] == ["-"]
