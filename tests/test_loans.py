from conftest import auth_headers
from virtualib.models.user import ROLE_USER


def test_return_request_can_be_cancelled_and_rejected(client, scenario, make_loan):
    loan = make_loan(scenario["dune"], scenario["u1"])
    borrower, admin = auth_headers(scenario["u1"]), auth_headers(scenario["admin"])

    assert client.post(f"/api/loans/{loan.id}/return-request", headers=borrower).json()["status"] == "return_requested"
    assert client.post(f"/api/loans/{loan.id}/cancel-return", headers=borrower).json()["status"] == "active"

    client.post(f"/api/loans/{loan.id}/return-request", headers=borrower)
    rejected = client.post(f"/api/loans/{loan.id}/reject", headers=admin)
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "return_rejected"
    assert rejected.json()["returned_at"] is None

    # A rejected return cannot be asked for again, but can still be approved
    again = client.post(f"/api/loans/{loan.id}/return-request", headers=borrower)
    assert again.status_code == 400
    assert again.json()["code"] == "INVALID_STATE_TRANSITION"
    assert client.post(f"/api/loans/{loan.id}/return", headers=admin).json()["status"] == "returned"


def test_loans_are_returned_once(client, scenario, make_loan):
    loan = make_loan(scenario["dune"], scenario["u1"])
    admin = auth_headers(scenario["admin"])

    assert client.post(f"/api/loans/{loan.id}/return", headers=admin).status_code == 200
    second = client.post(f"/api/loans/{loan.id}/return", headers=admin)
    assert second.status_code == 400
    assert second.json()["code"] == "INVALID_STATE_TRANSITION"


def test_borrowers_and_managers_keep_to_their_side(client, scenario, make_loan):
    loan = make_loan(scenario["dune"], scenario["u1"])

    # Someone else's loan is invisible to a standard user
    assert client.post(f"/api/loans/{loan.id}/return-request", headers=auth_headers(scenario["u2"])).status_code == 404
    # Borrowers do not approve their own returns
    assert client.post(f"/api/loans/{loan.id}/return", headers=auth_headers(scenario["u1"])).status_code == 403


def test_users_only_list_their_own_open_loans(client, scenario, make_loan):
    make_loan(scenario["dune"], scenario["u1"])
    make_loan(scenario["sapiens"], scenario["u2"])
    make_loan(scenario["sapiens"], scenario["u1"], returned=True, status="returned")

    mine = client.get("/api/loans", headers=auth_headers(scenario["u1"])).json()
    assert [loan["book"]["title"] for loan in mine] == ["Dune"]

    everyone = client.get("/api/loans", headers=auth_headers(scenario["admin"])).json()
    assert len(everyone) == 2

    returned = client.get("/api/loans", params={"status": "returned"}, headers=auth_headers(scenario["admin"])).json()
    assert len(returned) == 1
    bad = client.get("/api/loans", params={"status": "lost"}, headers=auth_headers(scenario["admin"]))
    assert bad.status_code == 400


def test_librarian_assigns_a_loan_to_a_member(client, tenants, make_user):
    member = make_user(ROLE_USER, libraries=[tenants["l1"]])
    outsider = make_user(ROLE_USER, libraries=[tenants["l3"]])
    headers = auth_headers(tenants["librarian"])

    created = client.post("/api/loans", json={"book_id": tenants["b1"].id, "user_id": member.id}, headers=headers)
    assert created.status_code == 201
    assert created.json()["status"] == "active"
    assert created.json()["user"]["email"] == member.email

    taken = client.post("/api/loans", json={"book_id": tenants["b1"].id, "user_id": member.id}, headers=headers)
    assert taken.status_code == 409

    stranger = client.post("/api/loans", json={"book_id": tenants["b2"].id, "user_id": outsider.id}, headers=headers)
    assert stranger.status_code == 400
    assert stranger.json()["code"] == "CONSTRAINT_VIOLATION"

    disabled = client.post("/api/loans", json={"book_id": tenants["b1_disabled"].id, "user_id": member.id},
                           headers=headers)
    assert disabled.status_code == 400


def test_users_cannot_assign_loans(client, scenario):
    response = client.post("/api/loans", json={"book_id": scenario["dune"].id, "user_id": scenario["u1"].id},
                           headers=auth_headers(scenario["u1"]))
    assert response.status_code == 403
