import logging
import os
import sys
from datetime import date, datetime
from logging.handlers import RotatingFileHandler

import pytest
from sqlalchemy import text

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from supplyhub import create_app
from supplyhub.extensions import db
from supplyhub.models import Item, ItemStatus, User
from supplyhub.services.request_views import RequestFilters, day_bounds_utc
from supplyhub.utils.logging import configure_logging


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "IMAGE_UPLOAD_FOLDER": str(tmp_path / "images"),
            "DOCUMENT_UPLOAD_FOLDER": str(tmp_path / "documents"),
        }
    )
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


def test_blueprints_are_registered(app):
    assert {
        "errors",
        "auth",
        "users",
        "items",
        "supply_requests",
        "memorandums",
        "documents",
        "lookups",
        "uploads",
    } <= set(app.blueprints)


def test_request_id_is_echoed(app):
    client = app.test_client()

    supplied = client.get("/auth/me", headers={"X-Request-ID": "abc123"})
    assert supplied.headers["X-Request-ID"] == "abc123"

    generated = client.get("/auth/me")
    assert len(generated.headers["X-Request-ID"]) == 12


def test_unknown_routes_answer_json(app):
    response = app.test_client().get("/api/nothing-here")

    assert response.status_code == 404
    assert "error" in response.get_json()


def test_unhandled_errors_answer_json(app):
    @app.route("/boom")
    def boom():
        raise RuntimeError("kaboom")

    response = app.test_client().get("/boom")

    assert response.status_code == 500
    assert response.get_json() == {"error": "Internal Server Error"}


def test_file_logging_is_disabled_under_test(app):
    assert configure_logging(app) is None


def test_file_logging_writes_to_log_dir(tmp_path):
    app = create_app(
        {
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "LOG_DIR": str(tmp_path / "logs"),
            "LOG_TO_FILE": "true",
        }
    )

    log_path = tmp_path / "logs" / "supplyhub.log"
    try:
        assert configure_logging(app) == log_path
        assert log_path.exists()
    finally:
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            if isinstance(handler, RotatingFileHandler) and handler.baseFilename == os.path.abspath(log_path):
                root_logger.removeHandler(handler)
                handler.close()


def test_create_user_command(app):
    runner = app.test_cli_runner()

    result = runner.invoke(
        args=[
            "create-user",
            "Approver@Example.com",
            "Ana Approver",
            "--role",
            "approver",
            "--division",
            "RECRUITMENT",
            "--section",
            "APPOINTMENT",
            "--password",
            "secret1",
        ]
    )

    assert result.exit_code == 0, result.output
    assert "Created approver approver@example.com." in result.output
    with app.app_context():
        user = User.query.filter_by(email="approver@example.com").one()
        assert user.is_approved
        assert user.role_names == ["approver"]
        assert user.check_password("secret1")

    again = runner.invoke(
        args=["create-user", "approver@example.com", "Ana", "--password", "secret1"]
    )
    assert again.exit_code != 0
    assert "already exists" in again.output


def test_recompute_item_status_command(app):
    with app.app_context():
        item = Item(name="Folder", unit="pc", quantity=8, reorder_point=2)
        db.session.add(item)
        db.session.commit()
        db.session.execute(
            text("UPDATE item SET status = :status WHERE id = :id"),
            {"status": ItemStatus.DISCONTINUED, "id": item.id},
        )
        db.session.commit()
        item_id = item.id

    result = app.test_cli_runner().invoke(args=["recompute-item-status"])

    assert result.exit_code == 0, result.output
    assert "Folder: DISCONTINUED -> AVAILABLE" in result.output
    assert "Updated 1 item status value(s)." in result.output
    with app.app_context():
        assert db.session.get(Item, item_id).status == ItemStatus.AVAILABLE


def test_day_bounds_follow_office_offset():
    filters = RequestFilters(date_from=date(2024, 3, 1), date_to=date(2024, 3, 1), utc_offset_hours=8)

    start, end = day_bounds_utc(filters)

    assert start == datetime(2024, 2, 29, 16, 0)
    assert end == datetime(2024, 3, 1, 16, 0)


def test_day_bounds_are_open_when_unset():
    assert day_bounds_utc(RequestFilters()) == (None, None)
    start, end = day_bounds_utc(RequestFilters(date_to=date(2024, 1, 31), utc_offset_hours=0))
    assert start is None
    assert end == datetime(2024, 2, 1)
