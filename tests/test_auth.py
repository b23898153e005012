import inspect
from datetime import timedelta

from fastapi.routing import APIRoute

from conftest import PASSWORD, auth_headers
from virtualib.main import app
from virtualib.models.user import ROLE_USER
from virtualib.services.auth import create_access_token


def test_login_returns_token_and_memberships(client, make_user, make_library):
    main = make_library("Main")
    user = make_user(ROLE_USER, libraries=[main], email="reader@virtualib.org")

    response = client.post("/api/auth/login", json={"email": "reader@virtualib.org", "password": PASSWORD})

    assert response.status_code == 200
    body = response.json()
    assert body["token"]
    assert body["user"]["id"] == user.id
    assert body["user"]["role"] == "user"
    assert body["user"]["libraries"] == [{"id": main.id, "name": "Main"}]


def test_login_with_wrong_password(client, make_user):
    make_user(ROLE_USER, email="reader@virtualib.org")
    response = client.post("/api/auth/login", json={"email": "reader@virtualib.org", "password": "nope"})
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHENTICATED"


def test_inactive_and_deleted_accounts_cannot_log_in(client, make_user):
    make_user(ROLE_USER, email="off@virtualib.org", is_active=False)
    make_user(ROLE_USER, email="gone@virtualib.org", deleted=True)
    for email in ("off@virtualib.org", "gone@virtualib.org"):
        response = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
        assert response.status_code == 401


def test_me_requires_a_valid_token(client, make_user):
    user = make_user(ROLE_USER)

    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401

    expired = create_access_token({"sub": str(user.id)}, expires_delta=timedelta(minutes=-5))
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"}).status_code == 401

    response = client.get("/api/auth/me", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["email"] == user.email


def test_token_of_a_deactivated_user_is_rejected(client, db, make_user):
    user = make_user(ROLE_USER)
    headers = auth_headers(user)
    user.is_active = False
    db.commit()
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_validation_errors_list_fields(client):
    response = client.post("/api/auth/login", json={"email": "not-an-email"})
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "VALIDATION"
    paths = {error["path"] for error in body["errors"]}
    assert {"email", "password"} <= paths


def test_roles_and_health(client, make_user):
    user = make_user(ROLE_USER)
    response = client.get("/api/roles", headers=auth_headers(user))
    assert response.status_code == 200
    assert [role["role_name"] for role in response.json()] == ["admin", "librarian", "user"]
    assert client.get("/api/health").json() == {"status": "healthy"}


def test_only_handlers_that_await_are_coroutines():
    awaiting = {"generate_summary", "create_book", "get_dashboard_stats", "test_email"}
    for route in app.routes:
        if isinstance(route, APIRoute) and route.path.startswith("/api/") and route.path != "/api/health":
            assert inspect.iscoroutinefunction(route.endpoint) == (route.endpoint.__name__ in awaiting), route.path
