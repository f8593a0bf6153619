import uuid

from flask import Flask, current_app, g, jsonify, request
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from config import Config

from . import models  # ensure models are registered with SQLAlchemy
from .cli import register_commands
from .extensions import db, login_manager
from .routes import (
    auth,
    documents,
    errors,
    items,
    lookups,
    memorandums,
    supply_requests,
    uploads,
    users,
)
from .utils.logging import configure_logging


def _ensure_core_roles() -> None:
    """Make sure the built-in roles exist for assignment."""

    existing_roles = {
        role.name: role
        for role in models.Role.query.filter(
            models.Role.name.in_(models.RoleName.DESCRIPTIONS)
        ).all()
    }

    changed = False
    for role_name, description in models.RoleName.DESCRIPTIONS.items():
        role = existing_roles.get(role_name)
        if role is None:
            db.session.add(models.Role(name=role_name, description=description))
            changed = True
        elif role.description != description:
            role.description = description
            changed = True

    if changed:
        db.session.commit()


def _ensure_superuser_account(admin_email: str, admin_password: str, admin_name: str) -> None:
    """Create or update the default administrative user."""

    if not admin_email:
        return

    for attempt in range(3):
        try:
            admin_role = models.Role.query.filter_by(name=models.RoleName.ADMIN).first()
            if admin_role is None:
                admin_role = models.Role(
                    name=models.RoleName.ADMIN,
                    description=models.RoleName.DESCRIPTIONS[models.RoleName.ADMIN],
                )
                db.session.add(admin_role)

            user = models.User.query.filter_by(email=admin_email).first()
            if user is None:
                user = models.User(
                    email=admin_email,
                    name=admin_name,
                    division=models.Division.MANAGEMENT,
                    section=models.Section.ADMINISTRATIVE,
                )
                db.session.add(user)

            if admin_password:
                user.set_password(admin_password)
            user.is_approved = True

            if admin_role not in user.roles:
                user.roles.append(admin_role)

            db.session.commit()
            return
        except IntegrityError:
            db.session.rollback()
            if attempt == 2:
                raise


def create_app(config_override=None):
    app = Flask(__name__)

    # load configuration from environment variables
    app.config.from_object(Config)
    if config_override:
        app.config.update(config_override)

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///:memory:"):
        engine_options = app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {})
        connect_args = engine_options.setdefault("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        engine_options.setdefault("poolclass", StaticPool)

    configure_logging(app)

    db.init_app(app)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str):
        if not user_id:
            return None
        try:
            return db.session.get(models.User, int(user_id))
        except (TypeError, ValueError):
            return None
        except OperationalError:
            current_app.logger.warning(
                "Skipped user lookup because the database is unavailable."
            )
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Unauthorized"}), 401

    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def expose_request_id(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers["X-Request-ID"] = request_id
        return response

    with app.app_context():
        try:
            db.create_all()
            _ensure_core_roles()
            _ensure_superuser_account(
                app.config.get("ADMIN_EMAIL"),
                app.config.get("ADMIN_PASSWORD"),
                app.config.get("ADMIN_NAME"),
            )
        except SQLAlchemyError:
            current_app.logger.exception("Database initialization error")
            db.session.remove()
            raise

    app.register_blueprint(errors.bp)
    app.register_blueprint(auth.bp, url_prefix="/auth")
    app.register_blueprint(users.bp, url_prefix="/api/users")
    app.register_blueprint(items.bp, url_prefix="/api/items")
    app.register_blueprint(supply_requests.bp, url_prefix="/api")
    app.register_blueprint(memorandums.bp, url_prefix="/api/memorandums")
    app.register_blueprint(documents.bp, url_prefix="/api/documents")
    app.register_blueprint(lookups.bp, url_prefix="/api")
    app.register_blueprint(uploads.bp)

    register_commands(app)

    return app
