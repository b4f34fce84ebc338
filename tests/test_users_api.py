from fastapi import status


def _new_user_payload(**overrides):
    payload = {
        "email": "new.hire@acme-corp.com",
        "first_name": "Nia",
        "last_name": "Hire",
        "password": "Welcome-2024",
        "role": "EMPLOYEE",
    }
    payload.update(overrides)
    return payload


def test_superadmin_creates_user(client, superadmin, auth_headers):
    response = client.post("/api/users", json=_new_user_payload(), headers=auth_headers(superadmin))
    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["success"] is True
    assert body["data"]["email"] == "new.hire@acme-corp.com"
    assert body["data"]["full_name"] == "Nia Hire"
    assert "hashed_password" not in body["data"]

    login = client.post("/api/auth/login", json={"email": "new.hire@acme-corp.com", "password": "Welcome-2024"})
    assert login.status_code == status.HTTP_200_OK


def test_duplicate_email_conflicts(client, superadmin, employee, auth_headers):
    response = client.post(
        "/api/users",
        json=_new_user_payload(email="EMMA@acme-corp.com"),
        headers=auth_headers(superadmin),
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"]["code"] == "USER_EXISTS"


def test_admin_cannot_create_users(client, admin_user, auth_headers):
    response = client.post("/api/users", json=_new_user_payload(), headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_short_password_rejected(client, superadmin, auth_headers):
    response = client.post("/api/users", json=_new_user_payload(password="short"), headers=auth_headers(superadmin))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    body = response.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["details"]["fields"][0]["field"] == "password"


def test_list_users_filters_by_role(client, admin_user, employee, other_employee, auth_headers):
    response = client.get("/api/users", params={"role": "EMPLOYEE"}, headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_200_OK
    emails = {u["email"] for u in response.json()["data"]}
    assert emails == {employee.email, other_employee.email}


def test_list_users_search(client, admin_user, employee, other_employee, auth_headers):
    response = client.get("/api/users", params={"search": "omar"}, headers=auth_headers(admin_user))
    data = response.json()["data"]
    assert [u["email"] for u in data] == [other_employee.email]


def test_list_users_search_treats_wildcards_as_text(client, admin_user, employee, auth_headers):
    headers = auth_headers(admin_user)
    assert client.get("/api/users", params={"search": "%"}, headers=headers).json()["data"] == []
    assert client.get("/api/users", params={"search": "_"}, headers=headers).json()["data"] == []


def test_get_unknown_user(client, admin_user, auth_headers):
    response = client.get("/api/users/4242", headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_deactivate_user_blocks_their_token(client, superadmin, employee, auth_headers):
    headers = auth_headers(employee)
    response = client.patch(
        f"/api/users/{employee.id}/status", json={"is_active": False}, headers=auth_headers(superadmin)
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["is_active"] is False

    assert client.get("/api/auth/me", headers=headers).status_code == status.HTTP_403_FORBIDDEN


def test_cannot_deactivate_self(client, superadmin, auth_headers):
    response = client.patch(
        f"/api/users/{superadmin.id}/status", json={"is_active": False}, headers=auth_headers(superadmin)
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"]["code"] == "BAD_REQUEST"
