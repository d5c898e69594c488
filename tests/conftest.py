"""
Shared pytest fixtures for the Construction Project Tracker test suite.

Provides:
    - app: Flask application (session-scoped), attachments in a temp folder
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - employees / locations: seeded reference rows
    - fake_repository / fake_store: in-memory doubles recording every call,
      for engine tests that must prove no external call was made
"""

import copy

import pytest

from tracker import create_app
from tracker.core.exceptions import NotFoundError, UploadError
from tracker.models import db as _db
from tracker.models.reference import Employee, Location
from tracker.services.attachment_store import build_attachment_store, storage_path

ADMIN_CREDENTIAL = "test-admin-secret"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["UPLOAD_FOLDER"] = str(tmp_path_factory.mktemp("attachments"))
    application.extensions["attachment_store"] = build_attachment_store(application.config)
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Reference data ───────────────────────────────────────────────────────


@pytest.fixture()
def employees():
    """Three employees; ids 1..3 in insertion order."""
    rows = [
        Employee(first_name="Somchai", last_name="Jaidee"),
        Employee(first_name="Anong", last_name="Srisuk"),
        Employee(first_name="Malee", last_name=None),
    ]
    _db.session.add_all(rows)
    _db.session.commit()
    return rows


@pytest.fixture()
def locations():
    """Two sites sharing a name (told apart by activity) and one unique site."""
    rows = [
        Location(site_name="Site A", activity="Phase1"),
        Location(site_name="Site A", activity="Phase2"),
        Location(site_name="Site B", activity=None),
    ]
    _db.session.add_all(rows)
    _db.session.commit()
    return rows


# ── In-memory doubles ────────────────────────────────────────────────────


class FakeRepository:
    """Dict-backed repository that records every call."""

    def __init__(self, projects=None, personnel=None, locations=None):
        self.projects = {}
        self.calls = []
        self.personnel = personnel or []
        self.location_rows = locations or []
        self._next_id = 1
        for project in projects or []:
            self.projects[project["id"]] = dict(project)
            self._next_id = max(self._next_id, project["id"] + 1)

    def list_projects(self):
        self.calls.append(("list_projects",))
        return [copy.deepcopy(p) for _, p in sorted(self.projects.items(), reverse=True)]

    def get_project(self, project_id):
        self.calls.append(("get_project", project_id))
        if project_id not in self.projects:
            raise NotFoundError("Project", project_id)
        return copy.deepcopy(self.projects[project_id])

    def insert_project(self, record):
        self.calls.append(("insert_project", copy.deepcopy(record)))
        project = {**record, "id": self._next_id}
        self.projects[self._next_id] = project
        self._next_id += 1
        return copy.deepcopy(project)

    def update_project(self, project_id, record):
        self.calls.append(("update_project", project_id, copy.deepcopy(record)))
        if project_id not in self.projects:
            raise NotFoundError("Project", project_id)
        self.projects[project_id].update(record)
        return copy.deepcopy(self.projects[project_id])

    def delete_project(self, project_id):
        self.calls.append(("delete_project", project_id))
        del self.projects[project_id]

    def list_personnel(self):
        self.calls.append(("list_personnel",))
        return list(self.personnel)

    def list_locations(self):
        self.calls.append(("list_locations",))
        return list(self.location_rows)


class FakeAttachmentStore:
    """Records uploads; ``fail_with`` makes every upload raise UploadError."""

    def __init__(self, fail_with=None):
        self.calls = []
        self.fail_with = fail_with

    def upload(self, content, project_name, original_filename, content_type=None):
        self.calls.append((project_name, original_filename, content))
        if self.fail_with:
            raise UploadError(self.fail_with)
        return f"https://files.example/{storage_path(project_name, original_filename)}"


@pytest.fixture()
def fake_repository():
    return FakeRepository()


@pytest.fixture()
def fake_store():
    return FakeAttachmentStore()
