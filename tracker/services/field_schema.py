"""
Field Schema Registry — per-role description of the editable project fields.

Each role (department) owns an ordered tuple of ``FieldDescriptor`` entries.
Validation, coercion and merge logic in the workflow engine are driven by
the descriptor's ``FieldType`` instead of per-field branching.

Usage:
    from tracker.services.field_schema import get_fields, FieldType

    for field in get_fields("design"):
        if field.type is FieldType.FILE:
            ...
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

ROLES = ("survey", "design", "bidding", "pm", "admin")
DEPARTMENT_ROLES = ("survey", "design", "bidding", "pm")
ADMIN_ROLE = "admin"

WORK_SCOPE_GROUP = "work_scope"

CONSTRUCTION_TYPES = (
    "New construction",
    "Renovation",
    "Change order on an existing contract",
)


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    CHECKBOX = "checkbox"
    FILE = "file"


class OptionSource(str, Enum):
    EMPLOYEES = "employees"
    LOCATIONS = "locations"


@dataclass(frozen=True)
class FieldDescriptor:
    """One editable field of a role's form."""
    name: str
    label: str
    type: FieldType
    required: bool = False
    options: tuple[str, ...] | None = None
    source: OptionSource | None = None
    accept: str | None = None
    group: str | None = None
    integer: bool = False
    read_only: bool = False

    def accepts_filename(self, filename: str) -> bool:
        """Check an upload's file name against ``accept`` (".pdf", "image/*", ...)."""
        if self.accept is None:
            return True
        ext = os.path.splitext(filename or "")[1].lower()
        for token in (t.strip().lower() for t in self.accept.split(",")):
            if token == "image/*" and ext in _IMAGE_EXTENSIONS:
                return True
            if token.startswith(".") and ext == token:
                return True
        return False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "label": self.label,
            "type": self.type.value,
            "required": self.required,
            "options": list(self.options) if self.options else None,
            "source": self.source.value if self.source else None,
            "accept": self.accept,
            "group": self.group,
            "read_only": self.read_only,
        }


_IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tif", ".tiff"})


def _text(name, label, **kw):
    return FieldDescriptor(name, label, FieldType.TEXT, **kw)


def _number(name, label, **kw):
    return FieldDescriptor(name, label, FieldType.NUMBER, **kw)


def _date(name, label, **kw):
    return FieldDescriptor(name, label, FieldType.DATE, **kw)


def _employee(name, label, **kw):
    return FieldDescriptor(name, label, FieldType.SELECT, source=OptionSource.EMPLOYEES, **kw)


def _location(name, label, **kw):
    return FieldDescriptor(name, label, FieldType.SELECT, source=OptionSource.LOCATIONS, **kw)


def _choice(name, label, options, **kw):
    return FieldDescriptor(name, label, FieldType.SELECT, options=tuple(options), **kw)


def _checkbox(name, label, **kw):
    return FieldDescriptor(name, label, FieldType.CHECKBOX, **kw)


def _file(name, label, accept=".pdf"):
    return FieldDescriptor(name, label, FieldType.FILE, accept=accept)


# ═════════════════════════════════════════════════════════════════════════════
# Per-role schemas
# ═════════════════════════════════════════════════════════════════════════════

_SURVEY_FIELDS = (
    _text("project_name", "Project name", required=True),
    _location("location_id", "Location", required=True),
    _choice("construction_type", "Construction type", CONSTRUCTION_TYPES, required=True),
    _date("survey_start_date", "Construction start date"),
    _date("survey_end_date", "Construction end date"),
    _number("planned_duration", "Planned duration (days)", integer=True, read_only=True),
    _checkbox("is_budget_estimated", "Budget estimate", group=WORK_SCOPE_GROUP),
    _checkbox("work_scope_design", "Design", group=WORK_SCOPE_GROUP),
    _checkbox("work_scope_bidding", "Bidding", group=WORK_SCOPE_GROUP),
    _checkbox("work_scope_pm", "Project management", group=WORK_SCOPE_GROUP),
    _number("budget", "Budget"),
    _employee("survey_by_id", "Submitted by", required=True),
)

_DESIGN_FIELDS = (
    _employee("design_owner_id", "Submitted by", required=True),
    _employee("project_manager_id", "Project manager", required=True),
    _file("requirement_pdf", "Requirements (.pdf)"),
    _file("initial_design_pdf", "Preliminary design (.pdf)"),
    _file("detailed_design_pdf", "Detailed design (.pdf)"),
    _file("calculation_pdf", "Calculations (.pdf)"),
    _file("overlap_pdf", "Overlapping areas (.pdf)"),
    _file("supporting_docs_pdf", "Supporting documents (.pdf)"),
    _file("rvt_model", "3D construction model (.rvt)", accept=".rvt"),
    _file("ifc_model", "3D model (.ifc)", accept=".ifc"),
)

_BIDDING_FIELDS = (
    _employee("bidding_owner_id", "Submitted by", required=True),
    _number("actual_cost", "Actual construction cost", required=True),
    _file("boq_pdf", "Bill of quantities (.pdf)"),
    _file("project_image", "Project image (3D render)", accept="image/*"),
    _file("bidding_pdf", "Bidding drawings (.pdf)"),
    _file("clarification_pdf", "Design clarification notes (.pdf)"),
    _file("tor_pdf", "Terms of reference (.pdf)"),
    _file("bidding_docs_pdf", "Bidding documents (.pdf)"),
)

_PM_FIELDS = (
    _employee("pm_owner_id", "Submitted by", required=True),
    _number("actual_duration", "Actual construction duration (days)", integer=True),
    _file("permission_docs_pdf", "Permit documents (.pdf)"),
    _file("weekly_report_pdf", "Weekly meeting reports (.pdf)"),
    _file("approval_docs_pdf", "Approval documents (.pdf)"),
    _file("memo_pdf", "Memos (.pdf)"),
    _file("change_order_pdf", "Change orders (.pdf)"),
    _file("handover_docs_pdf", "Handover documents (.pdf)"),
    _file("defect_checklist_pdf", "Pre-handover defect checklist (.pdf)"),
    _file("weekly_site_images_pdf", "Site photographs (.pdf)"),
    _file("as_built_pdf", "As-built drawings (.pdf)"),
)

_ADMIN_FIELDS = (
    _text("project_name", "Project name"),
    _location("location_id", "Location"),
    _employee("project_manager_id", "Project manager"),
    _employee("survey_by_id", "Submitted by (survey)"),
    _employee("design_owner_id", "Submitted by (design)"),
    _employee("bidding_owner_id", "Submitted by (bidding)"),
    _employee("pm_owner_id", "Submitted by (project management)"),
    _number("budget", "Budget"),
    _number("actual_cost", "Actual construction cost"),
    _choice("construction_type", "Construction type", CONSTRUCTION_TYPES),
    _date("survey_start_date", "Construction start date"),
    _date("survey_end_date", "Construction end date"),
    _checkbox("is_budget_estimated", "Scope: budget estimate"),
    _checkbox("work_scope_design", "Scope: design"),
    _checkbox("work_scope_bidding", "Scope: bidding"),
    _checkbox("work_scope_pm", "Scope: project management"),
    _date("start_date", "Start date (project management)"),
    _number("planned_duration", "Planned duration (days)", integer=True),
    _number("actual_duration", "Actual construction duration (days)", integer=True),
) + tuple(
    f for f in _DESIGN_FIELDS + _BIDDING_FIELDS + _PM_FIELDS if f.type is FieldType.FILE
)

FIELDS_BY_ROLE: dict[str, tuple[FieldDescriptor, ...]] = {
    "survey": _SURVEY_FIELDS,
    "design": _DESIGN_FIELDS,
    "bidding": _BIDDING_FIELDS,
    "pm": _PM_FIELDS,
    "admin": _ADMIN_FIELDS,
}


# ═════════════════════════════════════════════════════════════════════════════
# Lookups
# ═════════════════════════════════════════════════════════════════════════════


def is_valid_role(role: str) -> bool:
    return role in FIELDS_BY_ROLE


def get_fields(role: str) -> tuple[FieldDescriptor, ...]:
    """Return the ordered field descriptors for ``role``.

    Raises:
        KeyError: if ``role`` is not a known role.
    """
    return FIELDS_BY_ROLE[role]


def get_field(role: str, name: str) -> FieldDescriptor | None:
    for field in FIELDS_BY_ROLE.get(role, ()):
        if field.name == name:
            return field
    return None


def required_fields(role: str) -> list[FieldDescriptor]:
    return [f for f in get_fields(role) if f.required]


def file_fields(role: str) -> list[FieldDescriptor]:
    return [f for f in get_fields(role) if f.type is FieldType.FILE]


def group_fields(role: str, group: str) -> list[FieldDescriptor]:
    return [f for f in get_fields(role) if f.group == group]
