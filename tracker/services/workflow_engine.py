"""
Workflow Engine — validates stage submissions and drives the stage machine.

Stages: survey → design → bidding → pm → closed (terminal).

Role/action transitions (ROLE_TRANSITIONS):
    survey  + forward  : survey  → design
    design  + forward  : design  → bidding
    bidding + forward  : bidding → pm
    pm      + complete : pm      → closed
Every ``save`` keeps the status. admin edits any open project but never moves
it. Other role/action pairs leave the status alone.

The engine is stateless between calls. ``submit`` and ``request_deletion``
only validate and plan; they return a pending operation and make no external
call. Nothing reaches the attachment store or the repository until the
caller runs ``confirm()``; ``cancel()`` drops the plan.

Usage:
    engine = WorkflowEngine(ProjectRepository(), attachment_store, admin_password="...")
    pending = engine.submit("design", "forward", project, form_values, uploads)
    if pending.requires_confirmation:
        ...ask the user, then...
    outcome = pending.confirm()

Raises:
    ValidationError, ProjectClosedError, PermissionDenied (before any external call)
    UploadError, RepositoryError, NotFoundError (from confirm())
"""

from __future__ import annotations

import hmac
import logging
import math
from dataclasses import dataclass

from tracker.core.exceptions import (
    NotFoundError,
    PermissionDenied,
    ProjectClosedError,
    ValidationError,
)
from tracker.models.project import (
    CLOSED_STATUS,
    JOINED_KEYS,
    STATUS_LABELS,
    validate_stage_transition,
)
from tracker.services.attachment_store import FileUpload
from tracker.services.field_schema import (
    ADMIN_ROLE,
    WORK_SCOPE_GROUP,
    FieldDescriptor,
    FieldType,
    get_field,
    get_fields,
    group_fields,
    is_valid_role,
)
from tracker.utils.helpers import parse_date, parse_date_input

logger = logging.getLogger(__name__)

ACTIONS = ("save", "forward", "complete")
ADVANCING_ACTIONS = ("forward", "complete")

# (role, action) → (from status, to status)
ROLE_TRANSITIONS = {
    ("survey", "forward"): ("survey", "design"),
    ("design", "forward"): ("design", "bidding"),
    ("bidding", "forward"): ("bidding", "pm"),
    ("pm", "complete"): ("pm", "closed"),
}

CREATOR_ROLES = ("survey", "admin")

CONFIRMATION_PROMPTS = {
    "design": "Forward this project to the design team?",
    "bidding": "Forward this project to the bidding team?",
    "pm": "Forward this project to the project management team?",
    "closed": "You are about to close this project. It will be locked and can no "
              "longer be edited. Continue?",
}

DELETE_PROMPT = "Delete this project? All of its data will be removed permanently."

_TRUE_STRINGS = frozenset({"true", "1", "on", "yes"})
_FALSE_STRINGS = frozenset({"false", "0", "off", "no", ""})
_DURATION_KEYS = frozenset({"survey_start_date", "survey_end_date", "planned_duration"})


# ═════════════════════════════════════════════════════════════════════════════
# Role capabilities
# ═════════════════════════════════════════════════════════════════════════════


def available_actions(role: str) -> list[str]:
    """Actions the form offers to ``role``."""
    if role == ADMIN_ROLE:
        return ["save"]
    if role == "pm":
        return ["save", "complete"]
    if is_valid_role(role):
        return ["save", "forward"]
    return []


def can_create(role: str) -> bool:
    return role in CREATOR_ROLES


def initial_status(role: str) -> str:
    """Status given to a project created by ``role``."""
    return "design" if role == ADMIN_ROLE else role


def transition_target(role: str, action: str, status: str) -> str:
    """Status after ``action`` by ``role`` on a project currently in ``status``."""
    rule = ROLE_TRANSITIONS.get((role, action))
    if rule is None:
        return status
    from_status, to_status = rule
    if status != from_status or not validate_stage_transition(status, to_status):
        return status
    return to_status


# ═════════════════════════════════════════════════════════════════════════════
# Record helpers
# ═════════════════════════════════════════════════════════════════════════════


def strip_joined(record: dict | None) -> dict:
    """Copy of ``record`` without read-side joined reference objects."""
    if not record:
        return {}
    return {k: v for k, v in record.items() if k not in JOINED_KEYS}


def is_empty(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def compute_planned_duration(start, end) -> int | None:
    """Whole days from ``start`` to ``end``; None when either is missing or end < start."""
    start_date = parse_date(start)
    end_date = parse_date(end)
    if start_date is None or end_date is None:
        return None
    days = (end_date - start_date).days
    return days if days >= 0 else None


def coerce_value(field: FieldDescriptor, value):
    """Convert a submitted form value to the field's storage type.

    Raises:
        ValidationError: when the value cannot be read as the field's type.
    """
    if field.type is FieldType.CHECKBOX:
        if value is None:
            return False
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
            raise ValidationError(f"'{field.label}' must be true or false", field=field.name)
        return bool(value)

    if is_empty(value):
        return None

    if field.type is FieldType.TEXT:
        return str(value).strip()

    if field.type is FieldType.NUMBER:
        if isinstance(value, bool):
            raise ValidationError(f"'{field.label}' must be a number", field=field.name)
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"'{field.label}' must be a number", field=field.name) from None
        if not math.isfinite(number):
            raise ValidationError(f"'{field.label}' must be a finite number", field=field.name)
        if field.integer:
            if not number.is_integer():
                raise ValidationError(f"'{field.label}' must be a whole number", field=field.name)
            return int(number)
        return number

    if field.type is FieldType.DATE:
        try:
            return parse_date_input(value)
        except (TypeError, ValueError):
            raise ValidationError(f"'{field.label}' is not a valid date", field=field.name) from None

    if field.type is FieldType.SELECT:
        if field.source is not None:
            if isinstance(value, bool):
                raise ValidationError(f"'{field.label}' must reference a record id", field=field.name)
            try:
                return int(value)
            except (TypeError, ValueError):
                raise ValidationError(
                    f"'{field.label}' must reference a record id", field=field.name
                ) from None
        if field.options and value not in field.options:
            raise ValidationError(
                f"'{field.label}' must be one of: {', '.join(field.options)}", field=field.name
            )
        return value

    return value


# ═════════════════════════════════════════════════════════════════════════════
# Results and pending operations
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class SubmissionOutcome:
    """What a confirmed submission persisted."""
    project: dict
    role: str
    action: str
    created: bool
    previous_status: str | None
    status: str

    @property
    def transitioned(self) -> bool:
        return self.previous_status is not None and self.previous_status != self.status

    @property
    def notification(self) -> dict:
        if self.status == CLOSED_STATUS and self.transitioned:
            return {"kind": "transition", "message": "Project completed and locked"}
        if self.transitioned:
            return {"kind": "transition",
                    "message": f"Saved and forwarded: {STATUS_LABELS[self.status]}"}
        return {"kind": "saved", "message": "Changes saved"}

    def to_dict(self) -> dict:
        return {
            "project": self.project,
            "action": self.action,
            "created": self.created,
            "previous_status": self.previous_status,
            "status": self.status,
            "transitioned": self.transitioned,
            "notification": self.notification,
        }


class _Pending:
    """Single-use continuation: confirm() or cancel(), once."""

    def __init__(self):
        self._settled = False
        self.cancelled = False

    def _settle(self):
        if self._settled:
            raise RuntimeError(f"{type(self).__name__} was already confirmed or cancelled")
        self._settled = True

    def cancel(self) -> None:
        """Drop the pending operation. No external call has been made."""
        self._settle()
        self.cancelled = True
        logger.info("%s cancelled", type(self).__name__)


class PendingSubmission(_Pending):
    """A validated submission waiting to be confirmed.

    ``record`` is the merged record with the pre-transition status; uploads
    and the status change are applied by confirm().
    """

    def __init__(
        self,
        engine: "WorkflowEngine",
        *,
        role: str,
        action: str,
        project_id: int | None,
        record: dict,
        uploads: dict[str, FileUpload],
        project_name: str,
        previous_status: str | None,
        target_status: str,
    ):
        super().__init__()
        self._engine = engine
        self.role = role
        self.action = action
        self.project_id = project_id
        self.record = record
        self.uploads = uploads
        self.project_name = project_name
        self.previous_status = previous_status
        self.target_status = target_status

    @property
    def is_new(self) -> bool:
        return self.project_id is None

    @property
    def requires_confirmation(self) -> bool:
        return self.action in ADVANCING_ACTIONS and self.target_status != self.record["status"]

    @property
    def prompt(self) -> str | None:
        if not self.requires_confirmation:
            return None
        return CONFIRMATION_PROMPTS[self.target_status]

    def preview(self) -> dict:
        """Describe the pending change for a confirmation dialog."""
        return {
            "project_id": self.project_id,
            "project_name": self.project_name,
            "action": self.action,
            "from_status": self.record["status"],
            "to_status": self.target_status,
            "attachments": sorted(self.uploads),
            "prompt": self.prompt,
        }

    def confirm(self) -> SubmissionOutcome:
        """Upload attachments, apply the status change and persist the record.

        Plain saves need no confirmation; callers run confirm() straight away.
        An UploadError stops the submission before the record is written.
        """
        self._settle()
        return self._engine._execute(self)


class PendingDeletion(_Pending):
    """A permitted deletion waiting for the final explicit confirmation."""

    requires_confirmation = True
    prompt = DELETE_PROMPT

    def __init__(self, engine: "WorkflowEngine", *, role: str, project_id: int, project_name: str | None):
        super().__init__()
        self._engine = engine
        self.role = role
        self.project_id = project_id
        self.project_name = project_name

    def preview(self) -> dict:
        return {
            "project_id": self.project_id,
            "project_name": self.project_name,
            "action": "delete",
            "prompt": self.prompt,
        }

    def confirm(self) -> None:
        self._settle()
        self._engine.repository.delete_project(self.project_id)
        logger.info("Project deleted by role=%s", self.role,
                    extra={"project_id": self.project_id, "role": self.role, "action": "delete"})


# ═════════════════════════════════════════════════════════════════════════════
# Engine
# ═════════════════════════════════════════════════════════════════════════════


class WorkflowEngine:
    """Plans and executes project submissions and deletions.

    Args:
        repository:     ProjectRepository-like object (insert/update/delete).
        attachments:    AttachmentStore-like object (upload).
        admin_password: Shared secret gating admin creation and deletion.
    """

    def __init__(self, repository, attachments, *, admin_password: str | None = None):
        self.repository = repository
        self.attachments = attachments
        self.admin_password = admin_password

    # ── Submission ───────────────────────────────────────────────────────

    def submit(
        self,
        role: str,
        action: str,
        current_project: dict | None,
        form_values: dict | None,
        file_uploads: dict[str, FileUpload] | None = None,
        *,
        credential: str | None = None,
    ) -> PendingSubmission:
        """Validate a role's submission and return the plan for it.

        Args:
            role:            Acting role.
            action:          "save", "forward" or "complete".
            current_project: Existing record (joined objects allowed) or None to create.
                             A file field set to None means the caller cleared it.
            form_values:     Submitted values keyed by field name.
            file_uploads:    New files keyed by file field name.
            credential:      Shared admin credential (admin creation only).
        """
        form_values = form_values or {}
        file_uploads = {k: v for k, v in (file_uploads or {}).items() if v is not None}

        if not is_valid_role(role):
            raise PermissionDenied(role, "submit", "unknown role")
        if action not in ACTIONS:
            raise ValidationError(f"Unknown action '{action}'", rule="action")

        existing = strip_joined(current_project) if current_project is not None else None
        is_new = existing is None
        project_id = None if is_new else existing.get("id")

        if not is_new and existing.get("status") == CLOSED_STATUS:
            raise ProjectClosedError(project_id)
        self._check_role_may_edit(role, existing, credential)

        fields = get_fields(role)
        submitted = self._coerce_submitted(role, fields, form_values)
        self._check_uploads(role, file_uploads)

        # Merge: existing record, then the role's own non-file fields.
        record = dict(existing or {})
        record.update(submitted)
        if role == "survey" and _DURATION_KEYS & record.keys():
            record["planned_duration"] = compute_planned_duration(
                record.get("survey_start_date"), record.get("survey_end_date")
            )

        if action in ADVANCING_ACTIONS:
            self._check_required(fields, record, file_uploads)
        if is_empty(record.get("project_name")):
            raise ValidationError("Project name is required", field="project_name", rule="required")
        if role == "survey" and action == "forward":
            self._check_work_scope(record)

        # Attachments stay under the stored name when the name changes in this submit
        project_name = (existing or {}).get("project_name") or record["project_name"]

        previous_status = None if is_new else existing["status"]
        record["status"] = initial_status(role) if is_new else existing["status"]
        target_status = transition_target(role, action, record["status"])

        pending = PendingSubmission(
            self,
            role=role,
            action=action,
            project_id=project_id,
            record=record,
            uploads=file_uploads,
            project_name=project_name,
            previous_status=previous_status,
            target_status=target_status,
        )
        logger.debug("Submission planned role=%s action=%s %s→%s", role, action,
                     record["status"], target_status,
                     extra={"role": role, "action": action, "project_id": project_id})
        return pending

    def _execute(self, pending: PendingSubmission) -> SubmissionOutcome:
        record = dict(pending.record)
        for field_name, upload in pending.uploads.items():
            record[field_name] = self.attachments.upload(
                upload.content,
                pending.project_name,
                upload.filename,
                upload.content_type,
            )
        record["status"] = pending.target_status

        if pending.is_new:
            saved = self.repository.insert_project(record)
        else:
            saved = self.repository.update_project(pending.project_id, record)

        outcome = SubmissionOutcome(
            project=saved,
            role=pending.role,
            action=pending.action,
            created=pending.is_new,
            previous_status=pending.previous_status if not pending.is_new else pending.record["status"],
            status=saved.get("status", record["status"]),
        )
        logger.info("Submission stored role=%s action=%s status=%s",
                    pending.role, pending.action, outcome.status,
                    extra={"role": pending.role, "action": pending.action,
                           "project_id": saved.get("id")})
        return outcome

    # ── Deletion ─────────────────────────────────────────────────────────

    def request_deletion(self, role: str, project: dict | None, *, credential: str | None = None) -> PendingDeletion:
        """Check that ``role`` may delete ``project`` and return the pending deletion."""
        if project is None:
            raise NotFoundError("Project")
        if project.get("status") == CLOSED_STATUS:
            raise ProjectClosedError(project.get("id"))
        if not is_valid_role(role):
            raise PermissionDenied(role, "delete projects", "unknown role")
        if role == ADMIN_ROLE:
            self._check_credential(role, "delete projects", credential)
        elif project.get("status") != role:
            raise PermissionDenied(role, "delete projects", "the project is not in this team's stage")
        return PendingDeletion(
            self, role=role, project_id=project["id"], project_name=project.get("project_name")
        )

    # ── Guards ───────────────────────────────────────────────────────────

    def _check_credential(self, role: str, action: str, credential: str | None) -> None:
        if not self.admin_password:
            raise PermissionDenied(role, action, "admin credential is not configured")
        if credential is None or not hmac.compare_digest(
            str(credential).encode(), str(self.admin_password).encode()
        ):
            logger.warning("Admin credential rejected for %s", action,
                           extra={"role": role, "action": action})
            raise PermissionDenied(role, action, "invalid credential")

    def _check_role_may_edit(self, role: str, existing: dict | None, credential: str | None) -> None:
        if existing is None:
            if not can_create(role):
                raise PermissionDenied(role, "create projects")
            if role == ADMIN_ROLE:
                self._check_credential(role, "create projects", credential)
            return
        if role != ADMIN_ROLE and existing.get("status") != role:
            raise PermissionDenied(role, "edit this project", "the project is not in this team's stage")

    @staticmethod
    def _coerce_submitted(role: str, fields, form_values: dict) -> dict:
        submitted = {}
        for field in fields:
            if field.type is FieldType.FILE or field.name not in form_values:
                continue
            if field.read_only and role != ADMIN_ROLE:
                continue
            submitted[field.name] = coerce_value(field, form_values[field.name])
        return submitted

    @staticmethod
    def _check_uploads(role: str, file_uploads: dict[str, FileUpload]) -> None:
        for field_name, upload in file_uploads.items():
            field = get_field(role, field_name)
            if field is None or field.type is not FieldType.FILE:
                raise ValidationError(
                    f"'{field_name}' is not an attachment field for the {role} team",
                    field=field_name,
                )
            if not field.accepts_filename(upload.filename):
                raise ValidationError(
                    f"'{upload.filename}' is not accepted for '{field.label}' ({field.accept})",
                    field=field_name,
                )

    @staticmethod
    def _check_required(fields, record: dict, file_uploads: dict) -> None:
        # ``record`` is the merged result, so a blanked value counts as missing
        for field in fields:
            if not field.required:
                continue
            if field.type is FieldType.FILE and field.name in file_uploads:
                continue
            if is_empty(record.get(field.name)):
                raise ValidationError(
                    f"Please fill in '{field.label}' before continuing",
                    field=field.name, rule="required",
                )

    @staticmethod
    def _check_work_scope(record: dict) -> None:
        scope = group_fields("survey", WORK_SCOPE_GROUP)
        if not any(record.get(f.name) for f in scope):
            raise ValidationError("Select at least one work scope", rule=WORK_SCOPE_GROUP)
