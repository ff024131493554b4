"""HTTP-level tests for the dashboard endpoints."""

import io
import json

import pytest

from activity import LOGS_KEY


def upload(api, **overrides):
    data = {
        "title": "Budget Memo",
        "category": "Letters",
        "description": "Budget memo for the finance team.",
        "keywords": "budget, memo",
        "file": (io.BytesIO(b"%PDF-1.4 memo"), "memo.pdf"),
    }
    data.update(overrides)
    data = {key: value for key, value in data.items() if value is not None}
    return api.post("/documents", data=data, content_type="multipart/form-data")


def actions(workspace):
    return [entry["action"] for entry in workspace.activity.entries()]


# Session


def test_post_without_csrf_token_is_rejected(app):
    resp = app.test_client().post("/login", json={"email": "admin@example.com", "password": "password123"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Security check failed. Please try again."


def test_login_success(api, app_workspace):
    resp = api.login()
    assert resp.status_code == 200
    assert resp.get_json()["user"]["role"] == "admin"
    assert "password" not in resp.get_json()["user"]

    info = api.get("/session").get_json()
    assert info["user"]["email"] == "admin@example.com"
    assert "users.manage" in info["capabilities"]
    assert actions(app_workspace) == ["User Logged In"]


def test_login_failure(api, app_workspace):
    resp = api.login(password="nope")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Invalid credentials."}
    assert app_workspace.session.current_user() is None
    assert api.get("/dashboard").status_code == 401


def test_logout(admin_api, app_workspace):
    assert admin_api.post("/logout").status_code == 200
    assert admin_api.get("/dashboard").status_code == 401
    assert app_workspace.session.current_user() is None


def test_new_login_replaces_session(app, admin_api):
    other = type(admin_api)(app.test_client())
    assert other.login("johndoe@example.com").status_code == 200

    assert admin_api.get("/session").status_code == 401
    assert other.get("/session").get_json()["user"]["role"] == "viewer"


def test_index_redirects_when_signed_in(api):
    assert api.get("/").get_json()["branding"]["departmentName"] == "DocuSafe"
    api.login()
    resp = api.get("/")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/dashboard")


def test_security_headers(api):
    resp = api.get("/branding")
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert "no-store" in resp.headers["Cache-Control"]


def test_events_require_login(api):
    assert api.get("/events").status_code == 401


# Documents


def test_dashboard_filters(admin_api):
    body = admin_api.get("/dashboard?q=finance").get_json()
    assert [d["id"] for d in body["documents"]] == ["DOC-001"]
    assert body["totalDocuments"] == 5
    assert body["categoryCounts"] == {"Letters": 2, "Notifications": 2, "Notesheets": 1}
    assert body["canUpload"] and body["isAdmin"]

    body = admin_api.get("/dashboard?tab=notifications&date=2023-08-05").get_json()
    assert [d["id"] for d in body["documents"]] == ["DOC-005"]


def test_search_page(admin_api):
    body = admin_api.get("/search?keywords=SAFETY&category=all").get_json()
    assert [d["id"] for d in body["documents"]] == ["DOC-002"]
    assert admin_api.get("/search?q=nothing-like-this").get_json()["documents"] == []


def test_upload_download_and_view(admin_api, app_workspace):
    resp = upload(admin_api)
    assert resp.status_code == 201
    doc = resp.get_json()["document"]
    assert doc["fileName"] == "memo.pdf"
    assert app_workspace.documents.list()[0]["id"] == doc["id"]

    resp = admin_api.get(f"/documents/{doc['id']}/download")
    assert resp.status_code == 200
    assert resp.data == b"%PDF-1.4 memo"
    assert resp.headers["Content-Disposition"].startswith("attachment")

    resp = admin_api.get(f"/documents/{doc['id']}/view")
    assert resp.headers["Content-Disposition"].startswith("inline")

    assert actions(app_workspace)[:3] == ["Document Downloaded", "Document Downloaded", "Document Uploaded"]


def test_upload_with_missing_field_is_rejected(admin_api, app_workspace):
    resp = upload(admin_api, keywords="")
    assert resp.status_code == 400
    assert len(app_workspace.documents.list()) == 5


def test_upload_without_file_is_rejected(admin_api, app_workspace):
    data = {"title": "T", "category": "Letters", "description": "D", "keywords": "K"}
    resp = admin_api.post("/documents", data=data)
    assert resp.status_code == 400
    assert len(app_workspace.documents.list()) == 5


def test_upload_by_reference(admin_api):
    resp = upload(admin_api, file=None, fileUrl="https://example.com/memo.pdf")
    doc = resp.get_json()["document"]
    assert resp.status_code == 201

    resp = admin_api.get(f"/documents/{doc['id']}/download")
    assert resp.status_code == 302
    assert resp.headers["Location"] == "https://example.com/memo.pdf"


def test_download_without_file(admin_api):
    resp = admin_api.get("/documents/DOC-001/download")
    assert resp.status_code == 404
    assert "does not have a file" in resp.get_json()["error"]

    resp = admin_api.get("/documents/DOC-001/view")
    assert resp.get_json()["document"]["title"] == "Quarterly Financial Report Q2 2023"


def test_delete_documents(admin_api, app_workspace):
    doc = upload(admin_api).get_json()["document"]

    assert admin_api.post(f"/documents/{doc['id']}/delete").status_code == 200
    assert app_workspace.files.get(doc["id"]) is None
    assert admin_api.post(f"/documents/{doc['id']}/delete").status_code == 404

    resp = admin_api.post("/documents/bulk-delete", json={"ids": ["DOC-001", "DOC-002"]})
    assert resp.get_json()["deleted"] == ["DOC-001", "DOC-002"]
    assert [d["id"] for d in app_workspace.documents.list()] == ["DOC-003", "DOC-004", "DOC-005"]
    assert actions(app_workspace)[0] == "Bulk Documents Deleted"


@pytest.mark.parametrize("body", [{"ids": "DOC-001"}, {"ids": None}, "DOC-001"])
def test_bulk_delete_requires_a_list_of_ids(admin_api, app_workspace, body):
    before = app_workspace.documents.list()

    resp = admin_api.post("/documents/bulk-delete", json=body)

    assert resp.status_code == 400
    assert app_workspace.documents.list() == before


def test_forward_document(admin_api, app_workspace):
    resp = admin_api.post("/documents/DOC-002/forward", json={"recipientEmail": "team@example.com", "message": "FYI"})
    assert resp.status_code == 200
    assert "New Office Safety Protocols" in resp.get_json()["emailBody"]
    assert actions(app_workspace)[0] == "Document Forwarded"

    resp = admin_api.post("/documents/DOC-002/forward", json={"recipientEmail": "team"})
    assert resp.status_code == 400


# Roles


def test_viewer_permissions(api):
    api.login("johndoe@example.com")
    assert api.get("/dashboard").get_json()["canUpload"] is False
    assert upload(api).status_code == 403
    assert api.post("/documents/DOC-001/delete").status_code == 403
    assert api.get("/users").status_code == 403
    assert api.get("/logs").status_code == 403
    assert api.get("/settings/backup").status_code == 403
    assert api.post("/documents/DOC-001/forward", json={"recipientEmail": "a@example.com"}).status_code == 200


def test_data_entry_operator_can_upload_but_not_delete(api, app_workspace):
    app_workspace.users.add("Operator", "operator@example.com", "pw", "data-entry-operator")
    api.login("operator@example.com", "pw")

    doc = upload(api).get_json()["document"]
    assert api.post(f"/documents/{doc['id']}/delete").status_code == 403
    assert api.post("/categories", json={"name": "Circulars"}).status_code == 403


# Categories


def test_manage_categories(admin_api):
    assert admin_api.post("/categories", json={"name": "Circulars"}).status_code == 201
    assert admin_api.post("/categories", json={"name": "Circulars"}).status_code == 400
    assert admin_api.get("/categories").get_json()["categories"][-1] == "Circulars"

    resp = admin_api.post("/categories/Circulars/delete")
    assert resp.get_json()["categories"] == ["Letters", "Notifications", "Notesheets"]


# Users


def test_user_management(admin_api, app_workspace):
    users = admin_api.get("/users").get_json()["users"]
    assert {u["email"] for u in users} == {"admin@example.com", "johndoe@example.com"}
    assert all("password" not in u for u in users)

    resp = admin_api.post("/users", json={"name": "Jane", "email": "jane@example.com", "password": "pw", "role": "viewer"})
    assert resp.status_code == 201
    jane = resp.get_json()["user"]

    resp = admin_api.post("/users", json={"name": "Jane 2", "email": "JANE@example.com", "password": "pw"})
    assert resp.status_code == 400
    assert len(app_workspace.users.list()) == 3

    assert admin_api.post(f"/users/{jane['id']}/status").get_json()["user"]["status"] == "inactive"
    assert admin_api.post(f"/users/{jane['id']}/password", json={"newPassword": "next"}).status_code == 200
    assert admin_api.post(f"/users/{jane['id']}/delete").status_code == 200
    assert admin_api.post(f"/users/{jane['id']}/delete").status_code == 404


def test_admin_cannot_remove_or_deactivate_self(admin_api, app_workspace):
    assert admin_api.post("/users/1/delete").status_code == 403
    assert admin_api.post("/users/1/status").status_code == 403
    assert app_workspace.users.get("1")["status"] == "active"


# Settings


def test_branding_update_with_logo(admin_api, app):
    resp = admin_api.post(
        "/settings/branding",
        data={"departmentName": "Records Office", "logo": (io.BytesIO(b"\x89PNG\r\n"), "logo.png")},
        content_type="multipart/form-data",
    )
    branding = resp.get_json()["branding"]
    assert branding["departmentName"] == "Records Office"
    assert branding["logoUrl"].startswith("data:image/png;base64,")

    anonymous = app.test_client()
    assert anonymous.get("/branding").get_json()["branding"] == branding


def test_change_own_password(admin_api, app_workspace):
    payload = {"currentPassword": "password123", "newPassword": "next", "confirmPassword": "other"}
    assert admin_api.post("/settings/password", json=payload).status_code == 400

    payload["confirmPassword"] = "next"
    assert admin_api.post("/settings/password", json=payload).status_code == 200
    assert app_workspace.users.verify("admin@example.com", "next") is not None


def test_backup_and_restore(admin_api, app_workspace):
    resp = admin_api.get("/settings/backup")
    assert resp.headers["Content-Disposition"].startswith("attachment; filename=docusafe-backup-")
    backup = resp.get_json()

    admin_api.post("/categories", json={"name": "Circulars"})
    admin_api.post("/documents/DOC-001/delete")

    resp = admin_api.post("/settings/restore", json=backup)
    assert resp.status_code == 200
    assert app_workspace.categories.list() == backup["categories"]
    assert app_workspace.documents.list() == backup["documents"]
    assert actions(app_workspace)[0] == "Backup Restored"


@pytest.mark.parametrize("data", [
    {"backup": (io.BytesIO(b"not json"), "backup.json")},
    {"backup": (io.BytesIO(b'{"users": []}'), "backup.json")},
    {"backup": (io.BytesIO(json.dumps({
        "users": [{"id": "9", "name": "Ghost"}], "documents": [], "branding": {}, "categories": [],
    }).encode()), "backup.json")},
])
def test_invalid_restore_changes_nothing(admin_api, app_workspace, data):
    before = {key: app_workspace.store.get(key) for key in app_workspace.store.keys()}

    resp = admin_api.post("/settings/restore", data=data, content_type="multipart/form-data")

    assert resp.status_code == 400
    assert "Invalid backup file format" in resp.get_json()["error"]
    assert {key: app_workspace.store.get(key) for key in app_workspace.store.keys()} == before


# Activity log


def test_logs_view_and_clear(admin_api, app_workspace):
    logs = admin_api.get("/logs").get_json()["logs"]
    assert logs[0]["action"] == "User Logged In"

    assert admin_api.post("/logs/clear").get_json() == {"logs": []}
    assert app_workspace.store.get(LOGS_KEY) == []


# SQL backend


def test_sql_backend_end_to_end(sql_app):
    client = sql_app.test_client()
    token = client.get("/csrf-token").get_json()["csrf_token"]
    headers = {"X-CSRF-Token": token}

    assert client.post("/login", json={"email": "admin@example.com", "password": "password123"}, headers=headers).status_code == 200
    resp = client.post(
        "/documents",
        data={
            "title": "Stored",
            "category": "Letters",
            "description": "Kept in the database.",
            "keywords": "sql",
            "file": (io.BytesIO(b"stored bytes"), "stored.txt"),
        },
        headers=headers,
        content_type="multipart/form-data",
    )
    assert resp.status_code == 201
    doc_id = resp.get_json()["document"]["id"]

    assert client.get(f"/documents/{doc_id}/download").data == b"stored bytes"
    assert client.get("/dashboard?q=database").get_json()["documents"][0]["id"] == doc_id
