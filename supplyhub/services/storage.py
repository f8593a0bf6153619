"""Image hosting and document storage backends.

The application talks to two collaborators:

* an image host for item and document pictures, fed base64 ``data:`` URLs
  from the browser, and
* a document store for memorandum PDFs, which can also grant other users
  access to a stored file.

Both have a local-folder backend, used by default, and a hosted backend
(Cloudinary for images, Google Drive for documents) selected through
configuration. Hosted SDKs are only imported when their backend is chosen.
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import os
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import urlparse

from flask import current_app
from werkzeug.utils import secure_filename

from supplyhub.errors import StorageError, ValidationError
from supplyhub.extensions import db

logger = logging.getLogger("supplyhub.storage")

IMAGE_HOST_KEY = "supplyhub.image_host"
DOCUMENT_STORE_KEY = "supplyhub.document_store"

_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<payload>.+)$", re.DOTALL)

SHARE_ROLES = ("reader", "writer", "commenter")


def is_data_url(value) -> bool:
    return isinstance(value, str) and value.startswith("data:")


def decode_data_url(data_url: str, allowed_extensions) -> tuple[bytes, str]:
    match = _DATA_URL.match(data_url or "")
    if match is None:
        raise ValidationError("Image must be a base64 data URL.")
    mime = match.group("mime").lower()
    extension = (mimetypes.guess_extension(mime) or "").lstrip(".")
    if extension == "jpe":
        extension = "jpg"
    if extension not in allowed_extensions:
        raise ValidationError(f"Unsupported image type: {mime}")
    try:
        payload = base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image data is not valid base64.") from None
    return payload, extension


class LocalImageHost:
    """Stores images in an upload folder served by the uploads blueprint."""

    url_prefix = "/uploads/images/"

    def __init__(self, folder: str, allowed_extensions):
        self.folder = folder
        self.allowed_extensions = set(allowed_extensions)

    def upload(self, data_url: str) -> str:
        payload, extension = decode_data_url(data_url, self.allowed_extensions)
        os.makedirs(self.folder, exist_ok=True)
        filename = f"{uuid.uuid4().hex}.{extension}"
        with open(os.path.join(self.folder, filename), "wb") as handle:
            handle.write(payload)
        return f"{self.url_prefix}{filename}"

    def delete(self, url: str) -> bool:
        if not url or not url.startswith(self.url_prefix):
            return False
        filename = secure_filename(url[len(self.url_prefix):])
        file_path = os.path.join(self.folder, filename)
        if filename and os.path.exists(file_path):
            os.remove(file_path)
            return True
        return False


class CloudinaryImageHost:
    def __init__(self, cloud_name: str, api_key: str, api_secret: str, folder: str = "inventory"):
        import cloudinary

        if not (cloud_name and api_key and api_secret):
            raise StorageError("Cloudinary credentials are not configured.")
        cloudinary.config(
            cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True
        )
        self.folder = folder

    def upload(self, data_url: str) -> str:
        import cloudinary.exceptions
        import cloudinary.uploader

        try:
            result = cloudinary.uploader.upload(
                data_url,
                folder=self.folder,
                transformation=[
                    {"width": 800, "height": 800, "crop": "limit"},
                    {"quality": "auto"},
                    {"fetch_format": "auto"},
                ],
            )
        except cloudinary.exceptions.Error as exc:
            logger.exception("Cloudinary upload failed")
            raise StorageError("Failed to upload image") from exc
        return result["secure_url"]

    @staticmethod
    def public_id_from_url(url: str) -> str:
        segments = [segment for segment in urlparse(url).path.split("/") if segment]
        tail = "/".join(segments[-2:])
        return tail.rsplit(".", 1)[0]

    def delete(self, url: str) -> bool:
        import cloudinary.exceptions
        import cloudinary.uploader

        if not url:
            return False
        try:
            result = cloudinary.uploader.destroy(self.public_id_from_url(url))
        except cloudinary.exceptions.Error:
            logger.exception("Failed to delete image %s from Cloudinary", url)
            return False
        return result.get("result") == "ok"


class LocalDocumentStore:
    """Keeps uploaded PDFs on disk. Sharing is not available locally."""

    url_prefix = "/uploads/documents/"

    def __init__(self, folder: str):
        self.folder = folder

    def upload(self, file_storage, uploader_name: str | None = None, uploader_email: str | None = None) -> str:
        safe_name = secure_filename(file_storage.filename or "") or "document.pdf"
        os.makedirs(self.folder, exist_ok=True)
        unique_name = f"{uuid.uuid4().hex}_{safe_name}"
        file_storage.save(os.path.join(self.folder, unique_name))
        return f"{self.url_prefix}{unique_name}"

    def share(self, file_id: str, user_email: str, role: str = "reader") -> None:
        raise StorageError("File sharing requires the Google Drive document store.")

    def permissions(self, file_id: str) -> list[dict[str, object]]:
        raise StorageError("File sharing requires the Google Drive document store.")


class GoogleDriveDocumentStore:
    FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
    SCOPES = ["https://www.googleapis.com/auth/drive"]

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        folder_id: str | None = None,
        folder_name: str = "HRDO Documents",
    ):
        from google.oauth2.credentials import Credentials
        from googleapiclient.discovery import build

        if not (client_id and client_secret):
            raise StorageError("Google OAuth credentials are not configured.")
        if not refresh_token:
            raise StorageError("Google refresh token is not configured.")

        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            client_id=client_id,
            client_secret=client_secret,
            token_uri="https://oauth2.googleapis.com/token",
            scopes=self.SCOPES,
        )
        self._service = build("drive", "v3", credentials=credentials, cache_discovery=False)
        self._folder_id = folder_id or None
        self.folder_name = folder_name

    def _call(self, description: str, request):
        from googleapiclient.errors import HttpError

        try:
            return request.execute()
        except HttpError as exc:
            logger.exception("Google Drive call failed: %s", description)
            raise StorageError(f"Failed to {description}") from exc

    def documents_folder_id(self) -> str:
        if self._folder_id:
            return self._folder_id
        query = (
            f"name='{self.folder_name}' and mimeType='{self.FOLDER_MIME_TYPE}' "
            "and trashed=false"
        )
        found = self._call(
            "look up documents folder",
            self._service.files().list(q=query, fields="files(id, name)"),
        )
        files = found.get("files") or []
        if files:
            self._folder_id = files[0]["id"]
        else:
            created = self._call(
                "create documents folder",
                self._service.files().create(
                    body={"name": self.folder_name, "mimeType": self.FOLDER_MIME_TYPE},
                    fields="id",
                ),
            )
            self._folder_id = created["id"]
        return self._folder_id

    def upload(self, file_storage, uploader_name: str | None = None, uploader_email: str | None = None) -> str:
        from googleapiclient.http import MediaIoBaseUpload

        folder_id = self.documents_folder_id()
        timestamp = datetime.utcnow().strftime("%Y-%m-%dT%H-%M-%S")
        prefix = f"{uploader_name}_" if uploader_name else ""
        name = f"{prefix}{timestamp}_{file_storage.filename}"
        media = MediaIoBaseUpload(
            file_storage.stream,
            mimetype=file_storage.mimetype or "application/pdf",
            resumable=False,
        )
        created = self._call(
            "upload file to Google Drive",
            self._service.files().create(
                body={"name": name, "parents": [folder_id]},
                media_body=media,
                fields="id,webViewLink,webContentLink",
            ),
        )

        if uploader_email:
            try:
                self.share(folder_id, uploader_email, "reader")
            except StorageError:
                logger.warning("Could not share documents folder with %s", uploader_email)

        return created.get("webViewLink") or created.get("webContentLink")

    def share(self, file_id: str, user_email: str, role: str = "reader") -> None:
        self._call(
            f"share file with {user_email}",
            self._service.permissions().create(
                fileId=file_id,
                body={"role": role, "type": "user", "emailAddress": user_email},
                sendNotificationEmail=False,
            ),
        )
        logger.info("File %s shared with %s as %s", file_id, user_email, role)

    def permissions(self, file_id: str) -> list[dict[str, object]]:
        response = self._call(
            "get file permissions",
            self._service.permissions().list(
                fileId=file_id,
                fields="permissions(id, type, role, emailAddress, displayName)",
            ),
        )
        return response.get("permissions") or []


def _build_image_host(config):
    backend = (config.get("IMAGE_STORAGE_BACKEND") or "local").lower()
    if backend == "cloudinary":
        return CloudinaryImageHost(
            config.get("CLOUDINARY_CLOUD_NAME"),
            config.get("CLOUDINARY_API_KEY"),
            config.get("CLOUDINARY_API_SECRET"),
            config.get("CLOUDINARY_FOLDER", "inventory"),
        )
    if backend == "local":
        return LocalImageHost(
            config["IMAGE_UPLOAD_FOLDER"],
            config.get("IMAGE_ALLOWED_EXTENSIONS", {"png", "jpg", "jpeg"}),
        )
    raise StorageError(f"Unknown image storage backend: {backend}")


def _build_document_store(config):
    backend = (config.get("DOCUMENT_STORAGE_BACKEND") or "local").lower()
    if backend == "google_drive":
        return GoogleDriveDocumentStore(
            config.get("GOOGLE_CLIENT_ID"),
            config.get("GOOGLE_CLIENT_SECRET"),
            config.get("GOOGLE_REFRESH_TOKEN"),
            config.get("GOOGLE_DRIVE_FOLDER_ID"),
            config.get("GOOGLE_DRIVE_FOLDER_NAME", "HRDO Documents"),
        )
    if backend == "local":
        return LocalDocumentStore(config["DOCUMENT_UPLOAD_FOLDER"])
    raise StorageError(f"Unknown document storage backend: {backend}")


def get_image_host():
    """Return the image host for the active app, building it on first use."""

    host = current_app.extensions.get(IMAGE_HOST_KEY)
    if host is None:
        host = _build_image_host(current_app.config)
        current_app.extensions[IMAGE_HOST_KEY] = host
    return host


def get_document_store():
    store = current_app.extensions.get(DOCUMENT_STORE_KEY)
    if store is None:
        store = _build_document_store(current_app.config)
        current_app.extensions[DOCUMENT_STORE_KEY] = store
    return store


@dataclass(frozen=True)
class ImageChange:
    """An image swap that is only settled once the owning row is committed.

    ``uploaded`` is removed again if the commit fails; ``obsolete`` is removed
    once it succeeds.
    """

    url: str | None
    uploaded: str | None = None
    obsolete: str | None = None


def stage_image(old_url: str | None, new_value) -> ImageChange:
    """Work out the image a row should point at after an edit.

    Data URLs are uploaded straight away, plain URLs are kept as given and an
    empty value clears the image. ``None`` leaves the current image in place.
    """

    if new_value is None:
        return ImageChange(url=old_url)
    if not isinstance(new_value, str):
        raise ValidationError("Image must be a data URL or an image URL.")
    if is_data_url(new_value):
        new_url = get_image_host().upload(new_value)
        return ImageChange(url=new_url, uploaded=new_url, obsolete=old_url)
    new_value = new_value.strip() or None
    obsolete = old_url if old_url and new_value != old_url else None
    return ImageChange(url=new_value, obsolete=obsolete)


def _discard_image(url: str) -> None:
    try:
        get_image_host().delete(url)
    except (OSError, StorageError):
        logger.exception("Failed to remove image %s", url)


def commit_image_change(change: ImageChange) -> None:
    """Commit the session, then remove whichever image lost out."""

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        if change.uploaded:
            _discard_image(change.uploaded)
        raise
    if change.obsolete:
        _discard_image(change.obsolete)
