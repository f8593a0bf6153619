from flask import Blueprint, current_app, jsonify, request

from supplyhub.errors import NotFound, ValidationError
from supplyhub.extensions import db
from supplyhub.models import Role, RoleName, User
from supplyhub.security import require_admin
from supplyhub.validation import clean_text, parse_bool, request_payload

bp = Blueprint("users", __name__)


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


@bp.route("", methods=["GET"])
@require_admin
def list_users():
    query = User.query.order_by(User.created_at.desc(), User.id.desc())
    if parse_bool(request.args.get("pending")):
        query = query.filter(User.is_approved.is_(False))
    return jsonify({"users": [user.to_dict() for user in query.all()]})


@bp.route("/<int:user_id>/approve", methods=["POST"])
@require_admin
def approve_user(user_id):
    user = _get_user(user_id)
    user.is_approved = True
    db.session.commit()
    current_app.logger.info("User %s approved", user.email)
    return jsonify(user.to_dict())


@bp.route("/<int:user_id>/role", methods=["PUT"])
@require_admin
def set_role(user_id):
    user = _get_user(user_id)
    role_name = (clean_text(request_payload().get("role")) or "").lower()
    if role_name not in RoleName.ALL:
        raise ValidationError("Select a valid role.")

    role = Role.query.filter_by(name=role_name).first()
    if role is None:
        raise NotFound("Role not found")

    user.roles = [role]
    db.session.commit()
    current_app.logger.info("User %s assigned role %s", user.email, role_name)
    return jsonify(user.to_dict())
