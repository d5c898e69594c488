"""
Reference Blueprint — read-only data the forms and tables are built from.

Endpoints:
    GET /api/v1/reference/employees        — personnel, sorted by first name
    GET /api/v1/reference/locations        — sites with disambiguated display names
    GET /api/v1/reference/schema/<role>    — the role's form fields, select
                                             choices resolved, plus actions
    GET /api/v1/reference/stages           — stage order, labels, transitions
"""

import logging

from flask import Blueprint, jsonify

from tracker.blueprints import register_error_handlers
from tracker.core.exceptions import NotFoundError
from tracker.models.project import PROJECT_STATUSES, STAGE_TRANSITIONS, STATUS_LABELS
from tracker.services.field_schema import get_fields, is_valid_role
from tracker.services.project_repository import ProjectRepository
from tracker.services.reference_data import load_reference_data
from tracker.services.workflow_engine import CONFIRMATION_PROMPTS, available_actions, can_create

logger = logging.getLogger(__name__)

reference_bp = Blueprint("reference", __name__, url_prefix="/api/v1/reference")
register_error_handlers(reference_bp)


@reference_bp.route("/employees", methods=["GET"])
def list_employees():
    reference = load_reference_data(ProjectRepository())
    return jsonify({"items": reference.employees, "total": len(reference.employees)}), 200


@reference_bp.route("/locations", methods=["GET"])
def list_locations():
    reference = load_reference_data(ProjectRepository())
    return jsonify({"items": reference.locations, "total": len(reference.locations)}), 200


@reference_bp.route("/schema/<role>", methods=["GET"])
def form_schema(role: str):
    """Form description for ``role`` with select choices filled in."""
    if not is_valid_role(role):
        raise NotFoundError("Role", role)
    reference = load_reference_data(ProjectRepository())
    fields = []
    for field in get_fields(role):
        entry = field.to_dict()
        if field.source is not None:
            entry["choices"] = reference.options_for(field.source.value)
        elif field.options:
            entry["choices"] = [{"value": o, "label": o} for o in field.options]
        fields.append(entry)
    return jsonify({
        "role": role,
        "fields": fields,
        "actions": available_actions(role),
        "can_create": can_create(role),
    }), 200


@reference_bp.route("/stages", methods=["GET"])
def stages():
    return jsonify({
        "stages": [
            {
                "status": status,
                "index": index,
                "label": STATUS_LABELS[status],
                "next": STAGE_TRANSITIONS[status],
                "confirmation_prompt": CONFIRMATION_PROMPTS.get(status),
            }
            for index, status in enumerate(PROJECT_STATUSES)
        ]
    }), 200
