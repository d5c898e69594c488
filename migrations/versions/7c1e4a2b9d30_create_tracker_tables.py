"""create_tracker_tables

Create `employees`, `locations` and `projects` for the stage workflow.

Revision ID: 7c1e4a2b9d30
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e4a2b9d30"
down_revision = None
branch_labels = None
depends_on = None

_DESIGN_FILES = (
    "requirement_pdf", "initial_design_pdf", "detailed_design_pdf", "calculation_pdf",
    "overlap_pdf", "supporting_docs_pdf", "rvt_model", "ifc_model",
)
_BIDDING_FILES = (
    "boq_pdf", "project_image", "bidding_pdf", "clarification_pdf", "tor_pdf",
    "bidding_docs_pdf",
)
_PM_FILES = (
    "permission_docs_pdf", "weekly_report_pdf", "approval_docs_pdf", "memo_pdf",
    "change_order_pdf", "handover_docs_pdf", "defect_checklist_pdf",
    "weekly_site_images_pdf", "as_built_pdf",
)
_EMPLOYEE_FKS = (
    "survey_by_id", "design_owner_id", "project_manager_id", "bidding_owner_id", "pm_owner_id",
)


def _file_columns(names):
    return [sa.Column(name, sa.Text(), nullable=True) for name in names]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "employees" not in existing_tables:
        op.create_table(
            "employees",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=False),
            sa.Column("last_name", sa.String(length=100), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "locations" not in existing_tables:
        op.create_table(
            "locations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("site_name", sa.String(length=255), nullable=False),
            sa.Column("activity", sa.String(length=255), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="survey"),
            sa.Column("project_name", sa.String(length=255), nullable=True),
            # survey
            sa.Column("location_id", sa.Integer(), nullable=True),
            sa.Column("construction_type", sa.String(length=100), nullable=True),
            sa.Column("survey_start_date", sa.Date(), nullable=True),
            sa.Column("survey_end_date", sa.Date(), nullable=True),
            sa.Column("planned_duration", sa.Integer(), nullable=True),
            sa.Column("is_budget_estimated", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("work_scope_design", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("work_scope_bidding", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("work_scope_pm", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("budget", sa.Float(), nullable=True),
            sa.Column("survey_by_id", sa.Integer(), nullable=True),
            # design
            sa.Column("design_owner_id", sa.Integer(), nullable=True),
            sa.Column("project_manager_id", sa.Integer(), nullable=True),
            *_file_columns(_DESIGN_FILES),
            # bidding
            sa.Column("bidding_owner_id", sa.Integer(), nullable=True),
            sa.Column("actual_cost", sa.Float(), nullable=True),
            *_file_columns(_BIDDING_FILES),
            # project management
            sa.Column("pm_owner_id", sa.Integer(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("actual_duration", sa.Integer(), nullable=True),
            *_file_columns(_PM_FILES),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["location_id"], ["locations.id"], ondelete="SET NULL"),
            *[
                sa.ForeignKeyConstraint([fk], ["employees.id"], ondelete="SET NULL")
                for fk in _EMPLOYEE_FKS
            ],
            sa.CheckConstraint(
                "status IN ('survey', 'design', 'bidding', 'pm', 'closed')",
                name="ck_projects_status",
            ),
            sa.PrimaryKeyConstraint("id"),
        )

        op.create_index("ix_projects_status", "projects", ["status"])
        op.create_index("ix_projects_location_id", "projects", ["location_id"])
        for fk in _EMPLOYEE_FKS:
            op.create_index(f"ix_projects_{fk}", "projects", [fk])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "projects" in existing_tables:
        for fk in reversed(_EMPLOYEE_FKS):
            op.drop_index(f"ix_projects_{fk}", table_name="projects")
        op.drop_index("ix_projects_location_id", table_name="projects")
        op.drop_index("ix_projects_status", table_name="projects")
        op.drop_table("projects")

    if "locations" in existing_tables:
        op.drop_table("locations")

    if "employees" in existing_tables:
        op.drop_table("employees")
