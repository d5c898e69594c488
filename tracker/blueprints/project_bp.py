"""
Project Blueprint — role-scoped project lists, stage submissions and deletion.

The acting role comes from the ``X-Role`` header (or ``?role=``).

Endpoints:
    GET    /api/v1/projects?search=
           Table for the role: admin gets active/closed groups and counts,
           teams get their inbox.

    GET    /api/v1/projects/<id>
           One project with joined reference data, stage index and the
           role's form schema and actions.

    POST   /api/v1/projects
           Create. JSON: { "action": "save|forward", "values": {...},
                           "confirm": bool, "credential": "..." }
           or multipart/form-data with field values as form fields and files
           keyed by attachment field name.

    POST   /api/v1/projects/<id>/<action>      action ∈ save | forward | complete
           Same body as create, plus "cleared_attachments": [field, ...].

    DELETE /api/v1/projects/<id>
           Body or query: "confirm", "credential" (admin).

Forward, complete and delete without ``confirm`` return 409
ERR_CONFIRMATION_REQUIRED with the prompt and a preview; nothing is stored
or uploaded in that case.

Layer contract:
    - Blueprint: parse input, call the workflow engine, re-read, respond.
    - NO db.session calls here — all writes go through ProjectRepository.
    - NO inline role/stage checks — all business guards live in the engine.
"""

import json
import logging

from flask import Blueprint, current_app, jsonify, request

from tracker import limiter
from tracker.blueprints import current_role, register_error_handlers
from tracker.core.exceptions import ValidationError
from tracker.middleware.rate_limiter import DELETE_LIMIT
from tracker.models.project import CLOSED_STATUS, stage_index
from tracker.services.attachment_store import FileUpload
from tracker.services.field_schema import get_fields
from tracker.services.project_repository import ProjectRepository
from tracker.services.reference_data import load_reference_data
from tracker.services.session_service import SessionContext, open_project, remove_attachment
from tracker.services.view_projection import project_table
from tracker.services.workflow_engine import (
    ACTIONS,
    WorkflowEngine,
    available_actions,
    can_create,
)
from tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1/projects")
register_error_handlers(project_bp)

_delete_limit = limiter.shared_limit(DELETE_LIMIT, scope="project_delete")

# Request keys that steer the submission rather than carry field values
_CONTROL_KEYS = frozenset({"action", "confirm", "credential", "role", "cleared_attachments", "values"})
_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})


# ── Helpers ────────────────────────────────────────────────────────────────────


def _engine(repository: ProjectRepository) -> WorkflowEngine:
    return WorkflowEngine(
        repository,
        current_app.extensions["attachment_store"],
        admin_password=current_app.config.get("ADMIN_PASSWORD"),
    )


def _truthy(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in _TRUE_STRINGS


def _read_submission() -> dict:
    """Normalise a JSON or multipart body into values, uploads and control flags."""
    if request.mimetype == "multipart/form-data":
        form = request.form
        values = {k: form.get(k) for k in form.keys() if k not in _CONTROL_KEYS}
        if form.get("values"):
            try:
                values.update(json.loads(form["values"]))
            except ValueError:
                raise ValidationError("'values' must be a JSON object", field="values") from None
        uploads = {
            name: FileUpload(filename=f.filename, content=f.read(), content_type=f.mimetype)
            for name, f in request.files.items()
            if f and f.filename
        }
        cleared = form.getlist("cleared_attachments")
        return {
            "action": form.get("action"),
            "values": values,
            "uploads": uploads,
            "confirm": _truthy(form.get("confirm")),
            "credential": form.get("credential"),
            "cleared": cleared,
        }

    data = request.get_json(silent=True) or {}
    values = data.get("values") or {}
    if not isinstance(values, dict):
        raise ValidationError("'values' must be a JSON object", field="values")
    cleared = data.get("cleared_attachments") or []
    if isinstance(cleared, str):
        cleared = [cleared]
    return {
        "action": data.get("action"),
        "values": values,
        "uploads": {},
        "confirm": _truthy(data.get("confirm")),
        "credential": data.get("credential"),
        "cleared": cleared,
    }


def _confirmation_required(pending):
    pending.cancel()
    return api_error(
        E.CONFIRMATION_REQUIRED,
        pending.prompt,
        details={"preview": pending.preview()},
    )


def _run_submission(role, action, current, body, repository):
    pending = _engine(repository).submit(
        role,
        action,
        current,
        body["values"],
        body["uploads"],
        credential=body["credential"],
    )
    if pending.requires_confirmation and not body["confirm"]:
        return _confirmation_required(pending)

    outcome = pending.confirm()
    # Re-read so the response only ever shows what the repository holds
    outcome.project = repository.get_project(outcome.project["id"])
    return jsonify(outcome.to_dict()), 201 if outcome.created else 200


# ── Routes ─────────────────────────────────────────────────────────────────────


@project_bp.route("", methods=["GET"])
def list_projects():
    """Role-scoped table, with the admin search applied."""
    role = current_role()
    repository = ProjectRepository()
    projects = repository.list_projects()
    reference = load_reference_data(repository)
    body = project_table(role, projects, request.args.get("search"), reference)
    body["can_create"] = can_create(role)
    body["actions"] = available_actions(role)
    return jsonify(body), 200


@project_bp.route("/<int:project_id>", methods=["GET"])
def get_project(project_id: int):
    role = current_role()
    project = ProjectRepository().get_project(project_id)
    editable = project["status"] != CLOSED_STATUS and (role == "admin" or project["status"] == role)
    return jsonify({
        "project": project,
        "stage_index": stage_index(project["status"]),
        "editable": editable,
        "actions": available_actions(role) if editable else [],
        "fields": [f.to_dict() for f in get_fields(role)],
    }), 200


@project_bp.route("", methods=["POST"])
def create_project():
    """Create a project (survey or admin). Returns 201 with the stored record."""
    role = current_role()
    body = _read_submission()
    action = (body["action"] or "save").strip()
    return _run_submission(role, action, None, body, ProjectRepository())


@project_bp.route("/<int:project_id>/<action>", methods=["POST"])
def submit_project(project_id: int, action: str):
    """Save, forward or complete an existing project."""
    role = current_role()
    if action not in ACTIONS:
        return api_error(E.NOT_FOUND, f"Unknown action '{action}'")

    body = _read_submission()
    repository = ProjectRepository()
    ctx = open_project(SessionContext(role=role), repository.get_project(project_id))
    for field_name in body["cleared"]:
        ctx = remove_attachment(ctx, field_name)
    return _run_submission(role, action, ctx.editing_project, body, repository)


@project_bp.route("/<int:project_id>", methods=["DELETE"])
@_delete_limit
def delete_project(project_id: int):
    """Delete after the permission check and an explicit confirmation."""
    role = current_role()
    data = request.get_json(silent=True) or {}
    confirm = _truthy(data.get("confirm", request.args.get("confirm")))
    credential = data.get("credential") or request.headers.get("X-Admin-Credential")

    repository = ProjectRepository()
    pending = _engine(repository).request_deletion(
        role, repository.get_project(project_id), credential=credential
    )
    if not confirm:
        return _confirmation_required(pending)
    pending.confirm()
    return jsonify({"deleted": project_id}), 200
