"""Project model and the stage vocabulary shared by the workflow and the views."""

from datetime import date, datetime, timezone

from tracker.models import db

# ── Stage vocabulary ────────────────────────────────────────────────────────

PROJECT_STATUSES = ("survey", "design", "bidding", "pm", "closed")

CLOSED_STATUS = "closed"

STAGE_TRANSITIONS = {
    "survey":  ["design"],
    "design":  ["bidding"],
    "bidding": ["pm"],
    "pm":      ["closed"],
    "closed":  [],
}

STATUS_LABELS = {
    "survey": "Awaiting survey team",
    "design": "Awaiting design team",
    "bidding": "Awaiting bidding team",
    "pm": "Awaiting project management",
    "closed": "Project completed",
}

# Keys under which the repository attaches joined reference data.
# Read-side only: these never travel back into a write.
JOINED_KEYS = (
    "location",
    "surveyor",
    "project_manager",
    "design_owner",
    "bidding_owner",
    "pm_owner",
)

# joined key -> foreign-key column
JOINED_REFERENCES = {
    "location": "location_id",
    "surveyor": "survey_by_id",
    "project_manager": "project_manager_id",
    "design_owner": "design_owner_id",
    "bidding_owner": "bidding_owner_id",
    "pm_owner": "pm_owner_id",
}

_META_COLUMNS = frozenset({"id", "created_at", "updated_at"})


def validate_stage_transition(old_status, new_status):
    """Return True if a project may move from ``old_status`` to ``new_status``."""
    return new_status in STAGE_TRANSITIONS.get(old_status, [])


def next_stage(status):
    """Return the stage following ``status``, or None for the terminal stage."""
    following = STAGE_TRANSITIONS.get(status) or []
    return following[0] if following else None


def stage_index(status):
    """Position of ``status`` in the stage sequence (0-based, -1 if unknown)."""
    try:
        return PROJECT_STATUSES.index(status)
    except ValueError:
        return -1


def _employee_fk(name):
    return db.Column(
        db.Integer,
        db.ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        name=name,
    )


class Project(db.Model):
    """A construction project travelling through the departmental stages."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(20), nullable=False, default="survey", index=True)
    project_name = db.Column(db.String(255), nullable=True)

    # ── Survey stage ──
    location_id = db.Column(
        db.Integer,
        db.ForeignKey("locations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    construction_type = db.Column(db.String(100), nullable=True)
    survey_start_date = db.Column(db.Date, nullable=True)
    survey_end_date = db.Column(db.Date, nullable=True)
    planned_duration = db.Column(db.Integer, nullable=True, comment="Days, derived from survey dates")
    is_budget_estimated = db.Column(db.Boolean, nullable=False, default=False)
    work_scope_design = db.Column(db.Boolean, nullable=False, default=False)
    work_scope_bidding = db.Column(db.Boolean, nullable=False, default=False)
    work_scope_pm = db.Column(db.Boolean, nullable=False, default=False)
    budget = db.Column(db.Float, nullable=True)
    survey_by_id = _employee_fk("survey_by_id")

    # ── Design stage ──
    design_owner_id = _employee_fk("design_owner_id")
    project_manager_id = _employee_fk("project_manager_id")
    requirement_pdf = db.Column(db.Text, nullable=True)
    initial_design_pdf = db.Column(db.Text, nullable=True)
    detailed_design_pdf = db.Column(db.Text, nullable=True)
    calculation_pdf = db.Column(db.Text, nullable=True)
    overlap_pdf = db.Column(db.Text, nullable=True)
    supporting_docs_pdf = db.Column(db.Text, nullable=True)
    rvt_model = db.Column(db.Text, nullable=True)
    ifc_model = db.Column(db.Text, nullable=True)

    # ── Bidding stage ──
    bidding_owner_id = _employee_fk("bidding_owner_id")
    actual_cost = db.Column(db.Float, nullable=True)
    boq_pdf = db.Column(db.Text, nullable=True)
    project_image = db.Column(db.Text, nullable=True)
    bidding_pdf = db.Column(db.Text, nullable=True)
    clarification_pdf = db.Column(db.Text, nullable=True)
    tor_pdf = db.Column(db.Text, nullable=True)
    bidding_docs_pdf = db.Column(db.Text, nullable=True)

    # ── Project management stage ──
    pm_owner_id = _employee_fk("pm_owner_id")
    start_date = db.Column(db.Date, nullable=True)
    actual_duration = db.Column(db.Integer, nullable=True, comment="Days")
    permission_docs_pdf = db.Column(db.Text, nullable=True)
    weekly_report_pdf = db.Column(db.Text, nullable=True)
    approval_docs_pdf = db.Column(db.Text, nullable=True)
    memo_pdf = db.Column(db.Text, nullable=True)
    change_order_pdf = db.Column(db.Text, nullable=True)
    handover_docs_pdf = db.Column(db.Text, nullable=True)
    defect_checklist_pdf = db.Column(db.Text, nullable=True)
    weekly_site_images_pdf = db.Column(db.Text, nullable=True)
    as_built_pdf = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # ── Read-side joins ──
    location = db.relationship("Location", foreign_keys=[location_id])
    surveyor = db.relationship("Employee", foreign_keys=[survey_by_id])
    project_manager = db.relationship("Employee", foreign_keys=[project_manager_id])
    design_owner = db.relationship("Employee", foreign_keys=[design_owner_id])
    bidding_owner = db.relationship("Employee", foreign_keys=[bidding_owner_id])
    pm_owner = db.relationship("Employee", foreign_keys=[pm_owner_id])

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('survey', 'design', 'bidding', 'pm', 'closed')",
            name="ck_projects_status",
        ),
    )

    @classmethod
    def writable_columns(cls) -> list[str]:
        """Column names a workflow record may write."""
        return [c.name for c in cls.__table__.columns if c.name not in _META_COLUMNS]

    def to_dict(self) -> dict:
        """Serialize the stored columns only (ids, never joined objects)."""
        out = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            out[column.name] = value
        return out

    def to_joined_dict(self) -> dict:
        """Serialize columns plus display-friendly reference objects."""
        out = self.to_dict()
        for key in JOINED_KEYS:
            ref = getattr(self, key)
            out[key] = ref.to_dict() if ref is not None else None
        return out

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.project_name} [{self.status}]>"
