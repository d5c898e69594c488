"""
Attachment Blueprint — serves files written by the local attachment backend.

Endpoints:
    GET /attachments/<path>   — 404 when the object-storage backend is active
                                (its locators point at the storage service)
"""

import logging

from flask import Blueprint, abort, current_app, send_from_directory

from tracker.services.attachment_store import LocalAttachmentStore

logger = logging.getLogger(__name__)

attachment_bp = Blueprint("attachments", __name__, url_prefix="/attachments")


@attachment_bp.route("/<path:path>", methods=["GET"])
def download(path: str):
    store = current_app.extensions.get("attachment_store")
    if not isinstance(store, LocalAttachmentStore):
        abort(404)
    # send_from_directory rejects paths escaping the root
    return send_from_directory(store.root, path)
