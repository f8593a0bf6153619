import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from supplyhub import create_app
from supplyhub.extensions import db
from supplyhub.models import Division, Role, Section, User

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-pass"


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "ADMIN_EMAIL": ADMIN_EMAIL,
            "ADMIN_PASSWORD": ADMIN_PASSWORD,
            "ADMIN_NAME": "Office Admin",
            "IMAGE_UPLOAD_FOLDER": str(tmp_path / "images"),
            "DOCUMENT_UPLOAD_FOLDER": str(tmp_path / "documents"),
        }
    )
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def admin(app):
    client = app.test_client()
    client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    return client


@pytest.fixture
def staff(app):
    with app.app_context():
        user = User(
            email="staff@example.com",
            name="Staff Member",
            division=Division.RECRUITMENT,
            section=Section.APPOINTMENT,
            is_approved=True,
        )
        user.set_password("password")
        user.roles = [Role.query.filter_by(name="user").one()]
        db.session.add(user)
        db.session.commit()
    client = app.test_client()
    client.post("/auth/login", json={"email": "staff@example.com", "password": "password"})
    return client


def memo_payload(**overrides):
    payload = {
        "memo_number": "MC No. 12, s. 2024",
        "signatory": "Director Cruz",
        "issuing_office": "Office of the Director",
        "subject": "Guidelines on leave credits",
        "date": "January 5, 2024 10:30",
        "keywords": "leave; credits",
        "pdf_url": "https://drive.example.com/file/d/abc123/view",
    }
    payload.update(overrides)
    return payload


def test_admin_records_memorandum_with_encoder(app, admin):
    response = admin.post("/api/memorandums", json=memo_payload())

    assert response.status_code == 201
    body = response.get_json()
    assert body["encoder"] == "Office Admin"
    assert body["division"] == Division.MANAGEMENT
    assert body["section"] == Section.ADMINISTRATIVE
    assert body["date"] == "January 5, 2024 10:30"
    assert body["is_archived"] is False


def test_memorandum_fields_are_validated(app, admin):
    response = admin.post(
        "/api/memorandums",
        json=memo_payload(
            memo_number="MC #12",
            subject="x" * 101,
            signatory="",
            issuing_office="Office: HR",
            pdf_url="ftp://files.example.com/memo.pdf",
        ),
    )

    assert response.status_code == 400
    details = response.get_json()["details"]
    assert "Memo number contains invalid characters." in details
    assert "Subject must be at most 100 characters." in details
    assert "Signatory is required." in details
    assert "Issuing office contains invalid characters." in details
    assert "PDF URL must be a valid URL." in details


def test_memorandum_writes_are_admin_only(app, admin, staff):
    memo_id = admin.post("/api/memorandums", json=memo_payload()).get_json()["id"]

    assert staff.post("/api/memorandums", json=memo_payload()).status_code == 403
    assert staff.put(f"/api/memorandums/{memo_id}", json=memo_payload()).status_code == 403
    assert staff.delete(f"/api/memorandums/{memo_id}").status_code == 403
    assert staff.get(f"/api/memorandums/{memo_id}").status_code == 200


def test_update_and_delete_memorandum(app, admin):
    memo_id = admin.post("/api/memorandums", json=memo_payload()).get_json()["id"]

    updated = admin.put(
        f"/api/memorandums/{memo_id}", json=memo_payload(subject="Revised leave guidelines")
    )
    assert updated.status_code == 200
    assert updated.get_json()["subject"] == "Revised leave guidelines"

    assert admin.delete(f"/api/memorandums/{memo_id}").get_json() == {"success": True}
    assert admin.get(f"/api/memorandums/{memo_id}").status_code == 404


def test_search_filters_and_archive(app, admin, staff):
    leave = admin.post("/api/memorandums", json=memo_payload()).get_json()["id"]
    admin.post(
        "/api/memorandums",
        json=memo_payload(memo_number="MC No. 13", subject="Office supplies", signatory="Chief Reyes"),
    )

    found = staff.get("/api/memorandums?search=reyes").get_json()
    assert [row["memo_number"] for row in found["memorandums"]] == ["MC No. 13"]

    by_section = staff.get(f"/api/memorandums?section={Section.ADMINISTRATIVE}").get_json()
    assert by_section["total_items"] == 2
    assert staff.get(f"/api/memorandums?section={Section.TRAINING}").get_json()["total_items"] == 0

    archived = admin.patch(f"/api/memorandums/{leave}/archive").get_json()
    assert archived["is_archived"] is True
    active = staff.get("/api/memorandums").get_json()
    assert [row["memo_number"] for row in active["memorandums"]] == ["MC No. 13"]
    archived_list = staff.get("/api/memorandums?memorandum_state=archived").get_json()
    assert [row["id"] for row in archived_list["memorandums"]] == [leave]


def test_memorandum_export(app, admin):
    admin.post("/api/memorandums", json=memo_payload())

    response = admin.get("/api/memorandums/export")

    assert response.status_code == 200
    assert 'filename="memorandums-' in response.headers["Content-Disposition"]
    lines = response.get_data(as_text=True).splitlines()
    assert lines[0] == (
        "Memo Number,Signatory,Issuing Office,Subject,Date,Keywords,Encoder,Division,Section,PDF URL"
    )
    assert lines[1].startswith('"MC No. 12, s. 2024",Director Cruz,')
