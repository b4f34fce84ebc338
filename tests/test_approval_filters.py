from datetime import timedelta

import pytest
from fastapi import status

from hrops.core.time import utc_now
from hrops.models.approval import Approval
from hrops.services.approval_service import ApprovalService


@pytest.fixture
def seeded(db_session, admin_user, employee, other_employee, make_approval):
    """Eight approvals across two submitters, types, priorities and states."""
    rows = [
        (employee, "EXPENSE_CLAIM", "HIGH", "Taxi to airport"),
        (employee, "EXPENSE_CLAIM", "LOW", "Team lunch"),
        (employee, "LEAVE_REQUEST", "MEDIUM", "Annual leave in May"),
        (employee, "PURCHASE_ORDER", "URGENT", "Replacement laptop"),
        (other_employee, "EXPENSE_CLAIM", "HIGH", "Hotel in Leeds"),
        (other_employee, "TRAINING_REQUEST", "MEDIUM", "Python course"),
        (other_employee, "USER_ACCESS", "LOW", "Payroll system access"),
        (other_employee, "PURCHASE_ORDER", "HIGH", "Standing desk"),
    ]
    approvals = [
        make_approval(submitter, type=approval_type, priority=priority, title=title)
        for submitter, approval_type, priority, title in rows
    ]
    service = ApprovalService(db_session)
    service.decide(approvals[0].id, admin_user, "APPROVED")
    service.decide(approvals[4].id, admin_user, "REJECTED")
    service.cancel(approvals[6].id, other_employee)
    return approvals


def _codes(client, headers, **params):
    params.setdefault("limit", 100)
    response = client.get("/api/approvals", params=params, headers=headers)
    assert response.status_code == status.HTTP_200_OK, response.text
    return [a["approval_code"] for a in response.json()["data"]]


def test_list_is_newest_first(client, admin_user, seeded, auth_headers):
    codes = _codes(client, auth_headers(admin_user))
    assert codes == [a.approval_code for a in reversed(seeded)]


def test_each_filter(client, admin_user, seeded, auth_headers):
    headers = auth_headers(admin_user)
    assert _codes(client, headers, status="PENDING") == ["APR-0008", "APR-0006", "APR-0004", "APR-0003", "APR-0002"]
    assert _codes(client, headers, type="expense_claim") == ["APR-0005", "APR-0002", "APR-0001"]
    assert _codes(client, headers, priority="HIGH") == ["APR-0008", "APR-0005", "APR-0001"]
    assert _codes(client, headers, search="LEEDS") == ["APR-0005"]
    assert _codes(client, headers, search="apr-0003") == ["APR-0003"]
    assert _codes(client, headers, search="Omar") == ["APR-0008", "APR-0007", "APR-0006", "APR-0005"]


def test_all_means_no_filter(client, admin_user, seeded, auth_headers):
    headers = auth_headers(admin_user)
    assert _codes(client, headers, status="all", type="ALL", priority="all", date_range="all") == _codes(client, headers)


@pytest.mark.parametrize("chain", [
    [("type", "EXPENSE_CLAIM"), ("priority", "HIGH"), ("status", "APPROVED")],
    [("status", "PENDING"), ("search", "a"), ("type", "PURCHASE_ORDER")],
    [("date_range", "90days"), ("priority", "MEDIUM"), ("search", "course")],
])
def test_adding_filters_only_narrows(client, admin_user, seeded, auth_headers, chain):
    headers = auth_headers(admin_user)
    params = {}
    previous = set(_codes(client, headers))
    for name, value in chain:
        params[name] = value
        current = set(_codes(client, headers, **params))
        assert current <= previous
        previous = current


def test_employee_sees_only_own(client, employee, seeded, auth_headers):
    codes = _codes(client, auth_headers(employee))
    assert codes == ["APR-0004", "APR-0003", "APR-0002", "APR-0001"]
    assert _codes(client, auth_headers(employee), search="Hotel") == []


def test_date_range(client, admin_user, seeded, db_session, auth_headers):
    old = db_session.get(Approval, seeded[2].id)
    old.submitted_date = utc_now() - timedelta(days=45)
    db_session.commit()
    headers = auth_headers(admin_user)

    assert "APR-0003" not in _codes(client, headers, date_range="30days")
    assert "APR-0003" in _codes(client, headers, date_range="90days")
    assert _codes(client, headers, date_to=(utc_now() - timedelta(days=40)).isoformat()) == ["APR-0003"]


def test_date_to_as_plain_day_includes_that_whole_day(client, admin_user, employee, make_approval, auth_headers):
    make_approval(employee, title="Printer toner")
    today = utc_now().date().isoformat()
    headers = auth_headers(admin_user)

    assert _codes(client, headers, date_from=today, date_to=today) == ["APR-0001"]
    yesterday = (utc_now() - timedelta(days=1)).date().isoformat()
    assert _codes(client, headers, date_to=yesterday) == []


def test_search_for_the_word_all_is_applied(client, admin_user, employee, make_approval, auth_headers):
    make_approval(employee, title="Install licences")
    make_approval(employee, title="Laptop")

    assert _codes(client, auth_headers(admin_user), search="all") == ["APR-0001"]


def test_search_wildcards_match_literally(client, admin_user, employee, make_approval, auth_headers):
    make_approval(employee, title="Budget_2025")
    make_approval(employee, title="Laptop")
    headers = auth_headers(admin_user)

    assert _codes(client, headers, search="_") == ["APR-0001"]
    assert _codes(client, headers, search="%") == []


def test_pagination_metadata(client, admin_user, seeded, auth_headers):
    response = client.get("/api/approvals", params={"page": 2, "limit": 3}, headers=auth_headers(admin_user))
    body = response.json()
    assert body["metadata"] == {"page": 2, "limit": 3, "total": 8, "total_pages": 3}
    assert [a["approval_code"] for a in body["data"]] == ["APR-0005", "APR-0004", "APR-0003"]


@pytest.mark.parametrize("params", [
    {"status": "WAITING"},
    {"date_range": "1year"},
    {"date_to": "yesterday"},
    {"page": 0},
    {"limit": 101},
])
def test_invalid_query_parameters(client, admin_user, auth_headers, params):
    response = client.get("/api/approvals", params=params, headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
