from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from sqlalchemy import func

from supplyhub.errors import ValidationError
from supplyhub.extensions import db
from supplyhub.models import Division, Role, RoleName, Section, User
from supplyhub.validation import check_choice, clean_text, raise_for_errors, request_payload

bp = Blueprint("auth", __name__)

MIN_PASSWORD_LENGTH = 6


def _normalize_email(value) -> str:
    return (clean_text(value) or "").lower()


def _password(value) -> str:
    return value if isinstance(value, str) else ""


@bp.route("/register", methods=["POST"])
def register():
    payload = request_payload()
    errors = []

    email = _normalize_email(payload.get("email"))
    if not email or "@" not in email:
        errors.append("Enter a valid email address.")
    password = _password(payload.get("password"))
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    name = clean_text(payload.get("name"))
    if not name:
        errors.append("Name is required.")
    division, error = check_choice(
        payload.get("division"), field_label="Division", choices=Division.ALL
    )
    if error:
        errors.append(error)
    section, error = check_choice(
        payload.get("section"), field_label="Section", choices=Section.ALL
    )
    if error:
        errors.append(error)
    raise_for_errors(errors)

    if User.query.filter(func.lower(User.email) == email).first() is not None:
        raise ValidationError("Email already in use!")

    user = User(email=email, name=name, division=division, section=section, is_approved=False)
    user.set_password(password)
    user_role = Role.query.filter_by(name=RoleName.USER).first()
    if user_role is not None:
        user.roles = [user_role]
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("Registered %s; awaiting approval", email)
    return jsonify(user.to_dict()), 201


@bp.route("/login", methods=["POST"])
def login():
    payload = request_payload()
    email = _normalize_email(payload.get("email"))
    password = _password(payload.get("password"))

    user = User.query.filter(func.lower(User.email) == email).first() if email else None
    if user is None or not user.check_password(password):
        current_app.logger.warning("Failed login for %s", email or "<blank>")
        return jsonify({"error": "Invalid credentials"}), 401

    login_user(user)
    current_app.logger.info("User %s logged in", user.email)
    return jsonify(user.to_dict())


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@bp.route("/me")
@login_required
def me():
    return jsonify(current_user.to_dict())


@bp.route("/reset-password", methods=["POST"])
@login_required
def reset_password():
    payload = request_payload()
    old_password = _password(payload.get("old_password"))
    new_password = _password(payload.get("new_password"))

    if not current_user.check_password(old_password):
        raise ValidationError("Current password is incorrect.")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
        )

    current_user.set_password(new_password)
    db.session.commit()
    current_app.logger.info("User %s changed their password", current_user.email)
    return jsonify({"success": True})
