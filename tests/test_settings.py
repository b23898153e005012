from datetime import datetime, timedelta

import pytest

from conftest import FakeEmailService, auth_headers
from virtualib.errors import ExternalServiceError
from virtualib.main import app
from virtualib.models.library import LibrarySettings
from virtualib.services.mailer import EmailService, ProviderConfig, get_email_service, render_test_message

TEMPLATES = {
    "overdue": {
        "subject": "{book} is {days_late} days late",
        "body": "Hello {user},\nplease return {book} by {author}.",
    }
}


def test_settings_are_admin_only(client, tenants, scenario):
    assert client.get("/api/settings", headers=auth_headers(tenants["librarian"])).status_code == 403
    assert client.get("/api/settings", headers=auth_headers(scenario["u1"])).status_code == 403


def test_missing_settings_row_is_created_on_update(client, db, admin, make_library):
    library = make_library("Bare", with_settings=False)

    response = client.put("/api/settings", params={"library_id": library.id}, json={"smtp_host": "smtp.virtualib.org"},
                          headers=auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["library_id"] == library.id
    assert body["overdue_days"] == 14
    assert body["smtp_host"] == "smtp.virtualib.org"
    assert db.query(LibrarySettings).filter(LibrarySettings.library_id == library.id).count() == 1


def test_secrets_are_write_only(client, scenario):
    headers = auth_headers(scenario["admin"])
    library_id = scenario["library"].id

    saved = client.put("/api/settings", params={"library_id": library_id},
                       json={"smtp_user": "desk", "smtp_password": "hunter2"}, headers=headers).json()
    assert "smtp_password" not in saved
    assert saved["has_smtp_password"] is True

    # An empty secret leaves the stored one alone
    kept = client.put("/api/settings", params={"library_id": library_id},
                      json={"smtp_password": "", "overdue_days": 21}, headers=headers).json()
    assert kept["has_smtp_password"] is True
    assert kept["overdue_days"] == 21


def test_default_library_is_the_first_one(client, scenario, make_library):
    make_library("Second")
    response = client.get("/api/settings", headers=auth_headers(scenario["admin"]))
    assert response.json()["library_id"] == scenario["library"].id


def test_invalid_settings_are_refused(client, scenario):
    response = client.put("/api/settings", json={"overdue_days": 0}, headers=auth_headers(scenario["admin"]))
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION"


def test_loan_period_follows_library_settings(client, scenario):
    admin = auth_headers(scenario["admin"])
    client.put("/api/settings", params={"library_id": scenario["library"].id}, json={"overdue_days": 7}, headers=admin)
    request_id = client.post("/api/requests", json={"book_id": scenario["dune"].id},
                             headers=auth_headers(scenario["u1"])).json()["id"]

    loan_id = client.put(f"/api/requests/{request_id}", json={"status": "approved"}, headers=admin).json()["loan_id"]

    loan = client.get(f"/api/loans/{loan_id}", headers=admin).json()
    due = datetime.fromisoformat(loan["due_at"]) - datetime.fromisoformat(loan["borrowed_at"])
    assert due == timedelta(days=7)


def test_test_email_renders_the_overdue_template(client, scenario, email_service):
    response = client.post("/api/settings/test-email", json={
        "to_email": "desk@virtualib.org",
        "email_provider": "smtp",
        "smtp_host": "smtp.virtualib.org",
        "smtp_user": "desk",
        "smtp_pass": "hunter2",
        "email_templates": TEMPLATES,
    }, headers=auth_headers(scenario["admin"]))

    assert response.status_code == 200
    assert response.json() == {"message": "Test email sent successfully!"}
    config, message = email_service.sent[0]
    assert config.smtp_password == "hunter2"
    assert message.to == "desk@virtualib.org"
    assert message.subject == "The Great Gatsby is 2 days late"
    assert "Hello Test User,<br/>please return The Great Gatsby by F. Scott Fitzgerald." in message.html


def test_test_email_failures_are_reported(client, scenario):
    app.dependency_overrides[get_email_service] = lambda: FakeEmailService(
        error=ExternalServiceError("Failed to send test email: 535 Authentication failed")
    )
    response = client.post("/api/settings/test-email", json={"to_email": "desk@virtualib.org"},
                           headers=auth_headers(scenario["admin"]))
    assert response.status_code == 400
    assert response.json() == {"message": "Failed to send test email: 535 Authentication failed",
                               "code": "EXTERNAL_FAILURE"}


def test_test_email_is_admin_only(client, tenants):
    response = client.post("/api/settings/test-email", json={"to_email": "desk@virtualib.org"},
                           headers=auth_headers(tenants["librarian"]))
    assert response.status_code == 403


def test_plain_test_message_without_templates():
    message = render_test_message("desk@virtualib.org", None, "gmail")
    assert message.subject == "Test Email from Virtualib"
    assert "<strong>Provider:</strong> GMAIL" in message.html


def test_smtp_requires_credentials():
    message = render_test_message("desk@virtualib.org", TEMPLATES)
    config = ProviderConfig(provider="smtp", smtp_host="smtp.virtualib.org")
    with pytest.raises(ExternalServiceError, match="Missing SMTP credentials"):
        EmailService(timeout=1)._send_smtp(config, message)
