from flask import Blueprint, current_app, jsonify, request, send_from_directory
from flask_login import current_user, login_required

from supplyhub.errors import ValidationError
from supplyhub.security import require_admin
from supplyhub.services import storage
from supplyhub.validation import clean_text, request_payload

bp = Blueprint("uploads", __name__)


def _allowed_document(filename: str) -> bool:
    if "." not in filename:
        return False
    extension = filename.rsplit(".", 1)[1].lower()
    return extension in current_app.config.get("DOCUMENT_ALLOWED_EXTENSIONS", {"pdf"})


@bp.route("/api/upload", methods=["POST"])
@require_admin
def upload_document():
    file = request.files.get("file")
    if not file or not file.filename or not _allowed_document(file.filename):
        raise ValidationError("Only PDF files are allowed")

    url = storage.get_document_store().upload(
        file, uploader_name=current_user.name, uploader_email=current_user.email
    )
    current_app.logger.info("Document %s uploaded by %s", file.filename, current_user.email)
    return jsonify({"url": url})


@bp.route("/api/share-file", methods=["POST"])
@require_admin
def share_file():
    payload = request_payload()
    file_id = clean_text(payload.get("file_id"))
    user_email = clean_text(payload.get("user_email"))
    role = clean_text(payload.get("role")) or "reader"
    if not file_id or not user_email:
        raise ValidationError("File ID and user email are required")
    if role not in storage.SHARE_ROLES:
        raise ValidationError("Select a valid sharing role.")

    storage.get_document_store().share(file_id, user_email, role)
    return jsonify(
        {"success": True, "message": f"File shared with {user_email} as {role}"}
    )


@bp.route("/api/share-file", methods=["GET"])
@require_admin
def file_permissions():
    file_id = clean_text(request.args.get("file_id"))
    if not file_id:
        raise ValidationError("File ID is required")
    return jsonify({"permissions": storage.get_document_store().permissions(file_id)})


@bp.route("/uploads/images/<path:filename>")
@login_required
def uploaded_image(filename):
    return send_from_directory(current_app.config["IMAGE_UPLOAD_FOLDER"], filename)


@bp.route("/uploads/documents/<path:filename>")
@login_required
def uploaded_document(filename):
    return send_from_directory(current_app.config["DOCUMENT_UPLOAD_FOLDER"], filename)
