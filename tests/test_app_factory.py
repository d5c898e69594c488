"""
App factory tests — config guards, seed command, middleware headers, error bodies.
"""

import json
import logging

import pytest

from tracker.config import ProductionConfig
from tracker.middleware.logging_config import JSONFormatter, ReadableFormatter, workflow_tag
from tracker.models.reference import Employee, Location


# ═══════════════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════════════


class TestProductionConfig:

    def test_requires_database_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            ProductionConfig()

    def test_requires_secret_key(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/tracker")
        monkeypatch.delenv("SECRET_KEY", raising=False)
        with pytest.raises(RuntimeError, match="SECRET_KEY"):
            ProductionConfig()

    def test_requires_admin_password(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/tracker")
        monkeypatch.setattr(ProductionConfig, "ADMIN_PASSWORD", None)
        monkeypatch.setenv("SECRET_KEY", "s3cret")
        with pytest.raises(RuntimeError, match="ADMIN_PASSWORD"):
            ProductionConfig()

    def test_testing_app_flags(self, app):
        assert app.config["TESTING"] is True
        assert app.config["ATTACHMENT_BACKEND"] == "local"


# ═══════════════════════════════════════════════════════════════════════════
# CLI
# ═══════════════════════════════════════════════════════════════════════════


class TestSeedCommand:

    def test_seed_reference(self, app, tmp_path):
        path = tmp_path / "reference.json"
        path.write_text(json.dumps({
            "employees": [{"first_name": "Pim", "last_name": "Thong"}],
            "locations": [{"site_name": "Depot", "activity": None},
                          {"site_name": "Yard", "activity": "North"}],
        }), encoding="utf-8")

        result = app.test_cli_runner().invoke(args=["seed-reference", str(path)])

        assert result.exit_code == 0, result.output
        assert Employee.query.count() == 1
        assert Location.query.count() == 2

    def test_missing_file(self, app, tmp_path):
        result = app.test_cli_runner().invoke(args=["seed-reference", str(tmp_path / "none.json")])
        assert result.exit_code != 0


# ═══════════════════════════════════════════════════════════════════════════
# Middleware & error bodies
# ═══════════════════════════════════════════════════════════════════════════


class TestMiddleware:

    def test_security_headers(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["X-Frame-Options"] == "DENY"

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.headers.get("X-Request-ID")

    def test_unknown_route_json_404(self, client):
        res = client.get("/api/v1/nothing")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_method_not_allowed(self, client):
        res = client.put("/api/v1/projects")
        assert res.status_code == 405


# ═══════════════════════════════════════════════════════════════════════════
# Logging
# ═══════════════════════════════════════════════════════════════════════════


def _record(msg="Submission stored", **extra):
    record = logging.LogRecord("tracker.services.workflow_engine", logging.INFO,
                               __file__, 10, msg, None, None)
    record.__dict__.update(extra)
    return record


class TestLogFormatters:

    def test_json_groups_workflow_and_request_keys(self):
        line = JSONFormatter().format(_record(role="design", action="forward", project_id=12,
                                              request_id="abc123", method="POST"))
        entry = json.loads(line)
        assert entry["msg"] == "Submission stored"
        assert entry["level"] == "info"
        assert entry["workflow"] == {"role": "design", "action": "forward", "project_id": 12}
        assert entry["request"] == {"request_id": "abc123", "method": "POST"}

    def test_json_omits_empty_groups(self):
        entry = json.loads(JSONFormatter().format(_record(request_id="")))
        assert "workflow" not in entry
        assert "request" not in entry

    def test_workflow_tag(self):
        assert workflow_tag(_record(role="pm", action="complete", project_id=3)) == "[pm:complete #3]"
        assert workflow_tag(_record(role="admin")) == "[admin]"
        assert workflow_tag(_record()) == ""

    def test_readable_line(self):
        line = ReadableFormatter(colour=False).format(
            _record(role="survey", action="save", duration_ms=41.6)
        )
        assert "tracker.services.workflow_engine [survey:save] Submission stored (42ms)" in line
        assert "\033[" not in line
