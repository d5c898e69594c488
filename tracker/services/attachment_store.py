"""
Attachment Store — uploads project-scoped files and returns their locators.

Storage path contract (shared by every backend):
    "{sanitized project name}/{sanitized file name}"
Characters outside ``[A-Za-z0-9-_.]`` are replaced with ``_``. Uploading to an
existing path overwrites it. Any failure raises ``UploadError``.

Backends:
    LocalAttachmentStore          — files under the instance upload folder,
                                    served by ``/attachments/<path>``
    ObjectStorageAttachmentStore  — hosted bucket via ObjectStorageGateway
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass

from tracker.core.exceptions import UploadError
from tracker.integrations.storage_gateway import ObjectStorageGateway

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9\-_.]")


def sanitize_name(name) -> str:
    """Replace every character outside ``[A-Za-z0-9-_.]`` with ``_``."""
    if not isinstance(name, str):
        return ""
    return _UNSAFE_CHARS.sub("_", name)


def storage_path(project_name: str, filename: str) -> str:
    safe_project = sanitize_name(project_name)
    safe_file = sanitize_name(filename)
    if not safe_project or not safe_file:
        raise UploadError("project name and file name are required to store an attachment")
    if safe_project in (".", "..") or safe_file in (".", ".."):
        raise UploadError(f"invalid storage path '{safe_project}/{safe_file}'")
    return f"{safe_project}/{safe_file}"


@dataclass(frozen=True)
class FileUpload:
    """A file chosen for one attachment field, not yet uploaded."""
    filename: str
    content: bytes
    content_type: str | None = None


class AttachmentStore:
    """Base class. Subclasses implement ``_put(path, content, content_type)``."""

    def upload(
        self,
        content: bytes,
        project_name: str,
        original_filename: str,
        content_type: str | None = None,
    ) -> str:
        path = storage_path(project_name, original_filename)
        return self._put(path, content, content_type)

    def _put(self, path: str, content: bytes, content_type: str | None) -> str:
        raise NotImplementedError


class LocalAttachmentStore(AttachmentStore):
    """Writes attachments below ``root`` and returns ``{base_url}/{path}`` locators."""

    def __init__(self, root: str, base_url: str = "/attachments") -> None:
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip("/")

    def resolve(self, path: str) -> str:
        """Absolute filesystem path for a storage path, confined to ``root``."""
        full = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([self.root, full]) != self.root:
            raise UploadError(f"storage path escapes the upload folder: {path}")
        return full

    def _put(self, path, content, content_type):
        full = self.resolve(path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "wb") as fh:
                fh.write(content)
        except OSError as exc:
            logger.error("Local attachment write failed path=%s: %s", path, exc)
            raise UploadError(str(exc)) from exc
        logger.info("Stored attachment path=%s bytes=%d", path, len(content))
        return f"{self.base_url}/{path}"


class ObjectStorageAttachmentStore(AttachmentStore):
    """Uploads into a hosted bucket and returns its public URL."""

    def __init__(self, gateway: ObjectStorageGateway, bucket: str) -> None:
        self.gateway = gateway
        self.bucket = bucket

    def _put(self, path, content, content_type):
        result = self.gateway.upload_object(self.bucket, path, content, content_type)
        if not result.ok:
            raise UploadError(result.error or "storage service rejected the upload")
        return self.gateway.public_url(self.bucket, path)


def build_attachment_store(config) -> AttachmentStore:
    """Create the backend selected by ``ATTACHMENT_BACKEND`` in the Flask config."""
    backend = config.get("ATTACHMENT_BACKEND", "local")
    if backend == "object_storage":
        gateway = ObjectStorageGateway(
            config["STORAGE_URL"],
            config["STORAGE_API_KEY"],
            timeout=config.get("STORAGE_TIMEOUT", 60),
        )
        return ObjectStorageAttachmentStore(gateway, config.get("STORAGE_BUCKET", "project-files"))
    if backend == "local":
        return LocalAttachmentStore(
            config["UPLOAD_FOLDER"],
            config.get("ATTACHMENT_BASE_URL", "/attachments"),
        )
    raise ValueError(f"Unknown ATTACHMENT_BACKEND: {backend}")
