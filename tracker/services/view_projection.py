"""
View Projection — which projects a role sees, and how each row is displayed.

Scoping:
    admin                → every project; optional case-insensitive name search;
                           split into active / closed groups
    survey/design/bidding/pm → projects whose status equals the role (its inbox);
                           search does not apply

Order is always the order the repository returned (id descending).
An empty result is never an error: ``ProjectionResult.empty_reason`` tells
the caller which message to show.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from tracker.models.project import CLOSED_STATUS, PROJECT_STATUSES, STATUS_LABELS, stage_index
from tracker.services.field_schema import ADMIN_ROLE
from tracker.services.reference_data import ReferenceData, employee_display_name


class EmptyReason(str, Enum):
    NO_MATCHES = "no_matches"
    NO_WORK = "no_work"
    NO_DATA = "no_data"


EMPTY_MESSAGES = {
    EmptyReason.NO_MATCHES: 'No project name matches "{term}"',
    EmptyReason.NO_WORK: "Nothing waiting for this team",
    EmptyReason.NO_DATA: "No projects yet",
}

# Role → joined key of the previous stage's owner, shown as "submitted by".
SUBMITTER_BY_ROLE = {
    "survey": "surveyor",
    "design": "surveyor",
    "bidding": "design_owner",
    "pm": "bidding_owner",
}

WORK_SCOPE_LABELS = (
    ("work_scope_design", "Design"),
    ("work_scope_bidding", "Bidding"),
    ("work_scope_pm", "Project management"),
)


@dataclass
class ProjectionResult:
    role: str
    projects: list[dict] = field(default_factory=list)
    search_term: str = ""
    empty_reason: EmptyReason | None = None

    @property
    def active(self) -> list[dict]:
        return [p for p in self.projects if p.get("status") != CLOSED_STATUS]

    @property
    def closed(self) -> list[dict]:
        return [p for p in self.projects if p.get("status") == CLOSED_STATUS]

    @property
    def empty_message(self) -> str | None:
        if self.empty_reason is None:
            return None
        return EMPTY_MESSAGES[self.empty_reason].format(term=self.search_term)

    def counts(self) -> dict:
        by_status = {s: 0 for s in PROJECT_STATUSES}
        for p in self.projects:
            if p.get("status") in by_status:
                by_status[p["status"]] += 1
        return {
            "total": len(self.projects),
            "active": len(self.active),
            "closed": len(self.closed),
            "by_status": by_status,
        }


def _matches(project: dict, needle: str) -> bool:
    return needle in (project.get("project_name") or "").casefold()


def visible_projects(role: str, projects: list[dict], search_term: str | None = None) -> ProjectionResult:
    """Project the full collection down to what ``role`` should see."""
    term = (search_term or "").strip()

    if role == ADMIN_ROLE:
        visible = list(projects)
        if term:
            needle = term.casefold()
            visible = [p for p in visible if _matches(p, needle)]
    else:
        term = ""
        visible = [p for p in projects if p.get("status") == role]

    reason = None
    if not visible:
        if term:
            reason = EmptyReason.NO_MATCHES
        elif role == ADMIN_ROLE:
            reason = EmptyReason.NO_DATA
        else:
            reason = EmptyReason.NO_WORK

    return ProjectionResult(role=role, projects=visible, search_term=term, empty_reason=reason)


# ── Display rows ─────────────────────────────────────────────────────────────


def work_scope_summary(project: dict) -> str:
    labels = [label for key, label in WORK_SCOPE_LABELS if project.get(key)]
    return ", ".join(labels) or "-"


def _person(project: dict, joined_key: str, id_key: str, reference: ReferenceData | None):
    if reference is not None and project.get(id_key) is not None:
        name = reference.employee_name(project[id_key])
        if name:
            return name
    return employee_display_name(project.get(joined_key))


def _location(project: dict, reference: ReferenceData | None):
    if reference is not None and project.get("location_id") is not None:
        name = reference.location_name(project["location_id"])
        if name:
            return name
    location = project.get("location")
    return location.get("site_name") if location else None


_ID_KEYS = {
    "surveyor": "survey_by_id",
    "design_owner": "design_owner_id",
    "bidding_owner": "bidding_owner_id",
}


def display_row(project: dict, role: str, reference: ReferenceData | None = None) -> dict:
    """Display-friendly summary of one project for ``role``'s table.

    Names come from the normalized reference data when available (so
    duplicate site names show disambiguated), else from the joined objects.
    """
    status = project.get("status")
    row = {
        "id": project.get("id"),
        "project_name": project.get("project_name"),
        "status": status,
        "status_label": STATUS_LABELS.get(status, status),
        "stage_index": stage_index(status),
        "closed": status == CLOSED_STATUS,
        "location": _location(project, reference),
        "project_manager": _person(project, "project_manager", "project_manager_id", reference),
        "work_scope": work_scope_summary(project),
        "budget": project.get("budget"),
        "has_3d_model": bool(project.get("ifc_model")),
    }
    submitter_key = SUBMITTER_BY_ROLE.get(role)
    if submitter_key is not None:
        row["submitted_by"] = _person(project, submitter_key, _ID_KEYS[submitter_key], reference)
    return row


def project_table(role: str, projects: list[dict], search_term: str | None = None,
                  reference: ReferenceData | None = None) -> dict:
    """Serialized table for ``role``: rows plus empty-state and admin grouping."""
    result = visible_projects(role, projects, search_term)
    body = {
        "role": role,
        "search": result.search_term,
        "empty_reason": result.empty_reason.value if result.empty_reason else None,
        "empty_message": result.empty_message,
    }
    if role == ADMIN_ROLE:
        body["active"] = [display_row(p, role, reference) for p in result.active]
        body["closed"] = [display_row(p, role, reference) for p in result.closed]
        body["counts"] = result.counts()
    else:
        body["items"] = [display_row(p, role, reference) for p in result.projects]
        body["total"] = len(result.projects)
    return body
