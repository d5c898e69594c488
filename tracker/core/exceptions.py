"""
Tracker-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and translate them into consistent HTTP responses (see app factory and
``tracker.blueprints.project_bp``).

Usage:
    from tracker.core.exceptions import ValidationError, ProjectClosedError

    raise ValidationError("Project name is required", field="project_name")
    raise ProjectClosedError(project_id=42)
"""


class TrackerError(Exception):
    """Base class for every domain error surfaced to the end user."""


class NotFoundError(TrackerError):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(TrackerError):
    """Raised when submitted input violates a field requirement or a workflow rule.

    Nothing is persisted and no external call is made when this is raised.

    Args:
        message: Human-readable explanation of what failed.
        field: Name of the offending field, when the failure is field-level.
        rule: Name of the violated rule (e.g. "work_scope"), when it is not.
    """

    def __init__(self, message: str, *, field: str | None = None, rule: str | None = None) -> None:
        self.field = field
        self.rule = rule
        super().__init__(message)

    @property
    def details(self) -> dict:
        details = {}
        if self.field:
            details["field"] = self.field
        if self.rule:
            details["rule"] = self.rule
        return details


class ProjectClosedError(TrackerError):
    """Raised on any write or delete attempt against a closed project."""

    def __init__(self, project_id: int | None = None) -> None:
        self.project_id = project_id
        super().__init__("Project is closed and can no longer be modified or deleted")


class PermissionDenied(TrackerError):
    """Raised when the acting role (or the shared credential) is not allowed to act."""

    def __init__(self, role: str, action: str, reason: str | None = None) -> None:
        msg = f"Role '{role}' is not allowed to {action}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.role = role
        self.action = action
        self.reason = reason


class UploadError(TrackerError):
    """Raised when an attachment upload fails. Aborts the whole submission."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Upload failed: {reason}")


class RepositoryError(TrackerError):
    """Raised when the project store cannot complete a read or write."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)
