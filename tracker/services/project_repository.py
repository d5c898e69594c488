"""
Project Repository — CRUD and joined reads over the project store.

Records travel in and out as plain dicts keyed by column name. Reads attach
display-friendly reference objects (see ``JOINED_KEYS``); writes only ever
apply writable columns, so joined data can never be persisted.

Every failure surfaces as ``RepositoryError`` (or ``NotFoundError`` for an
unknown id). The session is rolled back before raising.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from tracker.core.exceptions import NotFoundError, RepositoryError
from tracker.models import db
from tracker.models.project import JOINED_KEYS, Project
from tracker.models.reference import Employee, Location
from tracker.utils.helpers import commit_or_raise, parse_date

logger = logging.getLogger(__name__)


def _date_columns() -> frozenset[str]:
    return frozenset(
        c.name for c in Project.__table__.columns if isinstance(c.type, db.Date)
    )


class ProjectRepository:
    """Flask-SQLAlchemy backed store. Stateless; uses the request-scoped session."""

    def list_projects(self) -> list[dict]:
        """All projects with joined reference objects, newest (highest id) first."""
        try:
            rows = (
                Project.query
                .options(*[joinedload(getattr(Project, key)) for key in JOINED_KEYS])
                .order_by(Project.id.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Could not list projects")
            raise RepositoryError(f"Could not load projects: {exc.__class__.__name__}") from exc
        return [p.to_joined_dict() for p in rows]

    def get_project(self, project_id: int) -> dict:
        return self._load(project_id).to_joined_dict()

    def insert_project(self, record: dict) -> dict:
        project = Project()
        self._apply(project, record)
        db.session.add(project)
        commit_or_raise("insert project")
        logger.info("Inserted project id=%s status=%s", project.id, project.status,
                    extra={"project_id": project.id})
        return project.to_joined_dict()

    def update_project(self, project_id: int, record: dict) -> dict:
        project = self._load(project_id)
        self._apply(project, record)
        commit_or_raise("update project")
        logger.info("Updated project id=%s status=%s", project.id, project.status,
                    extra={"project_id": project.id})
        return project.to_joined_dict()

    def delete_project(self, project_id: int) -> None:
        project = self._load(project_id)
        db.session.delete(project)
        commit_or_raise("delete project")
        logger.info("Deleted project id=%s", project_id, extra={"project_id": project_id})

    def list_personnel(self) -> list[dict]:
        try:
            return [e.to_dict() for e in Employee.query.all()]
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise RepositoryError(f"Could not load personnel: {exc.__class__.__name__}") from exc

    def list_locations(self) -> list[dict]:
        try:
            return [loc.to_dict() for loc in Location.query.all()]
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise RepositoryError(f"Could not load locations: {exc.__class__.__name__}") from exc

    def add_reference_data(self, employees: list[dict], locations: list[dict]) -> tuple[int, int]:
        """Insert personnel and location rows (used by the seed command)."""
        for row in employees:
            db.session.add(Employee(first_name=row["first_name"], last_name=row.get("last_name")))
        for row in locations:
            db.session.add(Location(site_name=row["site_name"], activity=row.get("activity")))
        commit_or_raise("seed reference data")
        logger.info("Seeded %d employees, %d locations", len(employees), len(locations))
        return len(employees), len(locations)

    # ── internals ────────────────────────────────────────────────────────

    def _load(self, project_id: int) -> Project:
        try:
            project = db.session.get(Project, project_id)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise RepositoryError(f"Could not load project {project_id}") from exc
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    @staticmethod
    def _apply(project: Project, record: dict) -> None:
        date_columns = _date_columns()
        for column in Project.writable_columns():
            if column not in record:
                continue
            value = record[column]
            if column in date_columns:
                value = parse_date(value)
            setattr(project, column, value)
