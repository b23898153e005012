from conftest import auth_headers
from virtualib.models.user import ROLE_LIBRARIAN, ROLE_USER, Role


def _role_id(db, name):
    return db.query(Role).filter(Role.role_name == name).one().id


def user_payload(db, role=ROLE_USER, **overrides):
    payload = {
        "name": "Nora",
        "surname": "Reader",
        "email": "nora@virtualib.org",
        "role_id": _role_id(db, role),
        "password": "reading",
        "library_ids": [],
    }
    payload.update(overrides)
    return payload


def test_librarian_creates_members_of_owned_libraries(client, db, tenants):
    headers = auth_headers(tenants["librarian"])

    response = client.post("/api/users", json=user_payload(db, library_ids=[tenants["l1"].id]), headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["role"] == "user"
    assert body["libraries"] == [{"id": tenants["l1"].id, "name": "L1"}]
    login = client.post("/api/auth/login", json={"email": "nora@virtualib.org", "password": "reading"})
    assert login.status_code == 200


def test_librarian_limits(client, db, tenants):
    headers = auth_headers(tenants["librarian"])

    promoted = client.post("/api/users", json=user_payload(db, ROLE_LIBRARIAN, library_ids=[tenants["l1"].id]),
                           headers=headers)
    assert promoted.status_code == 403
    # Assigned to L2 but does not own it
    foreign = client.post("/api/users", json=user_payload(db, library_ids=[tenants["l2"].id]), headers=headers)
    assert foreign.status_code == 403
    homeless = client.post("/api/users", json=user_payload(db), headers=headers)
    assert homeless.status_code == 400


def test_emails_are_unique_including_deleted_accounts(client, db, admin, make_user):
    make_user(ROLE_USER, email="taken@virtualib.org")
    make_user(ROLE_USER, email="gone@virtualib.org", deleted=True)
    headers = auth_headers(admin)

    taken = client.post("/api/users", json=user_payload(db, email="taken@virtualib.org"), headers=headers)
    assert taken.status_code == 409
    assert taken.json()["message"] == "Email already registered"

    gone = client.post("/api/users", json=user_payload(db, email="gone@virtualib.org"), headers=headers)
    assert gone.status_code == 409
    assert "deleted account" in gone.json()["message"]


def test_delete_is_soft(client, db, tenants, make_user):
    member = make_user(ROLE_USER, libraries=[tenants["l1"]])
    headers = auth_headers(tenants["librarian"])

    assert client.delete(f"/api/users/{member.id}", headers=headers).status_code == 200

    db.expire_all()
    assert member.deleted_at is not None
    assert member.is_active is False
    assert member.id not in {user["id"] for user in client.get("/api/users", headers=headers).json()}


def test_nobody_deletes_themselves(client, admin):
    assert client.delete(f"/api/users/{admin.id}", headers=auth_headers(admin)).status_code == 403


def test_only_admins_change_roles(client, db, admin, tenants, make_user):
    member = make_user(ROLE_USER, libraries=[tenants["l1"]])
    payload = {"role_id": _role_id(db, ROLE_LIBRARIAN)}

    refused = client.put(f"/api/users/{member.id}", json=payload, headers=auth_headers(tenants["librarian"]))
    assert refused.status_code == 403

    promoted = client.put(f"/api/users/{member.id}", json=payload, headers=auth_headers(admin))
    assert promoted.status_code == 200
    assert promoted.json()["role"] == "librarian"


def test_librarian_keeps_memberships_they_do_not_own(client, tenants, make_user):
    member = make_user(ROLE_USER, libraries=[tenants["l1"], tenants["l3"]])

    response = client.put(f"/api/users/{member.id}", json={"library_ids": []},
                          headers=auth_headers(tenants["librarian"]))

    assert response.status_code == 200
    assert [library["name"] for library in response.json()["libraries"]] == ["L3"]


def test_librarian_sees_members_but_not_admins(client, db, admin, tenants, make_user):
    member = make_user(ROLE_USER, libraries=[tenants["l2"]])
    stranger = make_user(ROLE_USER, libraries=[tenants["l3"]])
    admin.libraries = [tenants["l1"]]
    db.commit()
    headers = auth_headers(tenants["librarian"])

    listed = {user["id"] for user in client.get("/api/users", headers=headers).json()}

    assert member.id in listed
    assert admin.id not in listed
    assert stranger.id not in listed
    assert client.get(f"/api/users/{admin.id}", headers=headers).status_code == 404


def test_users_cannot_manage_accounts(client, scenario):
    assert client.get("/api/users", headers=auth_headers(scenario["u1"])).status_code == 403
