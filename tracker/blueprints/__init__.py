"""
HTTP surface of the tracker.

    project_bp     /api/v1/projects       — role-scoped lists, submissions, deletion
    reference_bp   /api/v1/reference      — personnel, locations, form schemas, stages
    attachment_bp  /attachments           — files stored by the local backend
    health_bp      /api/v1/health         — readiness / liveness probes

Domain exceptions are translated once per blueprint through
``register_error_handlers``.
"""

import logging

from flask import g, request

from tracker.core.exceptions import (
    NotFoundError,
    PermissionDenied,
    ProjectClosedError,
    RepositoryError,
    UploadError,
    ValidationError,
)
from tracker.services.field_schema import is_valid_role
from tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_role() -> str:
    """Acting role from the ``X-Role`` header or the ``role`` query parameter.

    Raises:
        PermissionDenied: when no known role was given.
    """
    role = (request.headers.get("X-Role") or request.args.get("role") or "").strip()
    if not is_valid_role(role):
        raise PermissionDenied(role or "anonymous", "use the tracker", "unknown role")
    g.role = role
    return role


def register_error_handlers(bp):
    """Attach the domain-exception → JSON response handlers to ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        code = E.VALIDATION_REQUIRED if error.rule == "required" else E.VALIDATION_INVALID
        return api_error(code, str(error), details=error.details)

    @bp.errorhandler(ProjectClosedError)
    def _handle_closed(error: ProjectClosedError):
        return api_error(E.PROJECT_CLOSED, str(error), details={"project_id": error.project_id})

    @bp.errorhandler(PermissionDenied)
    def _handle_forbidden(error: PermissionDenied):
        logger.warning("Permission denied: %s", error,
                       extra={"role": error.role, "action": error.action})
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(UploadError)
    def _handle_upload(error: UploadError):
        logger.error("Attachment upload failed: %s", error.reason)
        return api_error(E.UPLOAD, str(error), details={"reason": error.reason})

    @bp.errorhandler(RepositoryError)
    def _handle_repository(error: RepositoryError):
        return api_error(E.DATABASE, str(error))

    return bp
