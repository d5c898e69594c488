"""
Workflow Engine Tests — stage machine, validation gates and confirmation.

  - Monotonic stage walk survey → closed
  - Closed projects refuse submissions and deletions
  - Earlier-stage fields survive later saves
  - Required-field and work-scope gates fail before any external call
  - Creation round-trip touches only the submitted schema fields
  - Confirmation: cancel leaves everything untouched
  - Attachments: accept check, upload failure blocks persistence
  - Deletion rules and admin credential
"""

import pytest

from conftest import ADMIN_CREDENTIAL, FakeAttachmentStore, FakeRepository
from tracker.core.exceptions import (
    PermissionDenied,
    ProjectClosedError,
    UploadError,
    ValidationError,
)
from tracker.models.project import PROJECT_STATUSES
from tracker.services.attachment_store import FileUpload
from tracker.services.field_schema import DEPARTMENT_ROLES, get_fields
from tracker.services.workflow_engine import (
    WorkflowEngine,
    available_actions,
    can_create,
    coerce_value,
    compute_planned_duration,
    transition_target,
)

SURVEY_VALUES = {
    "project_name": "Clinic extension",
    "location_id": 1,
    "construction_type": "Renovation",
    "survey_start_date": "2026-01-01",
    "survey_end_date": "2026-03-01",
    "budget": "1500000",
    "work_scope_design": True,
    "survey_by_id": 1,
}
DESIGN_VALUES = {"design_owner_id": 2, "project_manager_id": 3}
BIDDING_VALUES = {"bidding_owner_id": 2, "actual_cost": 1450000}
PM_VALUES = {"pm_owner_id": 3, "actual_duration": 70}


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════


def _engine(repository=None, store=None):
    return WorkflowEngine(
        repository if repository is not None else FakeRepository(),
        store if store is not None else FakeAttachmentStore(),
        admin_password=ADMIN_CREDENTIAL,
    )


def _run(engine, role, action, project, values, uploads=None, **kw):
    pending = engine.submit(role, action, project, values, uploads, **kw)
    return pending.confirm()


def _project(status, **fields):
    return {"id": 7, "status": status, "project_name": "Clinic extension", **fields}


# ═══════════════════════════════════════════════════════════════════════════
# Stage machine
# ═══════════════════════════════════════════════════════════════════════════


class TestStageWalk:

    def test_full_walk_advances_one_stage_at_a_time(self):
        repo = FakeRepository()
        engine = _engine(repo)
        outcome = _run(engine, "survey", "forward", None, SURVEY_VALUES)
        seen = [outcome.status]
        project = outcome.project

        for role, action, values in (
            ("design", "forward", DESIGN_VALUES),
            ("bidding", "forward", BIDDING_VALUES),
            ("pm", "complete", PM_VALUES),
        ):
            outcome = _run(engine, role, action, project, values)
            project = outcome.project
            seen.append(outcome.status)

        assert seen == ["design", "bidding", "pm", "closed"]
        indexes = [PROJECT_STATUSES.index(s) for s in seen]
        assert indexes == sorted(indexes)
        assert all(b - a == 1 for a, b in zip(indexes, indexes[1:]))

    def test_save_keeps_status(self):
        repo = FakeRepository(projects=[_project("design")])
        outcome = _run(_engine(repo), "design", "save", repo.get_project(7), {"design_owner_id": 2})
        assert outcome.status == "design"
        assert outcome.notification["kind"] == "saved"

    def test_forward_reports_transition_notification(self):
        repo = FakeRepository(projects=[_project("design")])
        outcome = _run(_engine(repo), "design", "forward", repo.get_project(7), DESIGN_VALUES)
        assert outcome.transitioned is True
        assert outcome.notification["kind"] == "transition"

    def test_admin_save_never_moves_status(self):
        repo = FakeRepository(projects=[_project("bidding")])
        outcome = _run(_engine(repo), "admin", "save", repo.get_project(7), {"budget": 10})
        assert outcome.status == "bidding"

    def test_undefined_pair_is_a_status_noop(self):
        assert transition_target("pm", "forward", "pm") == "pm"
        assert transition_target("design", "complete", "design") == "design"
        assert transition_target("admin", "forward", "survey") == "survey"

    def test_new_admin_project_starts_at_design(self):
        repo = FakeRepository()
        outcome = _run(_engine(repo), "admin", "save", None,
                       {"project_name": "Depot"}, credential=ADMIN_CREDENTIAL)
        assert outcome.status == "design"
        assert outcome.created is True


# ═══════════════════════════════════════════════════════════════════════════
# Closed immutability
# ═══════════════════════════════════════════════════════════════════════════


class TestClosedProjects:

    @pytest.mark.parametrize("role", ["pm", "admin"])
    @pytest.mark.parametrize("action", ["save", "complete"])
    def test_submit_refused(self, role, action):
        closed = _project("closed", pm_owner_id=3)
        repo = FakeRepository(projects=[closed])
        with pytest.raises(ProjectClosedError):
            _engine(repo).submit(role, action, repo.get_project(7), {"budget": 1})
        assert repo.projects[7] == closed
        assert [c[0] for c in repo.calls] == ["get_project"]

    @pytest.mark.parametrize("role", ["pm", "admin"])
    def test_delete_refused(self, role):
        closed = _project("closed")
        repo = FakeRepository(projects=[closed])
        with pytest.raises(ProjectClosedError):
            _engine(repo).request_deletion(role, repo.get_project(7), credential=ADMIN_CREDENTIAL)
        assert 7 in repo.projects


# ═══════════════════════════════════════════════════════════════════════════
# Field persistence across stages
# ═══════════════════════════════════════════════════════════════════════════


class TestFieldPersistence:

    def test_survey_fields_survive_design_save(self):
        repo = FakeRepository()
        engine = _engine(repo)
        created = _run(engine, "survey", "forward", None, SURVEY_VALUES).project
        survey_names = {f.name for f in get_fields("survey")}
        before = {k: v for k, v in created.items() if k in survey_names}

        saved = _run(engine, "design", "save", created, {"design_owner_id": 2}).project

        assert {k: saved[k] for k in before} == before
        assert saved["design_owner_id"] == 2

    def test_keys_outside_role_schema_are_ignored(self):
        repo = FakeRepository(projects=[_project("design", budget=100.0)])
        saved = _run(_engine(repo), "design", "save", repo.get_project(7),
                     {"budget": 1, "status": "closed", "design_owner_id": 2}).project
        assert saved["budget"] == 100.0
        assert saved["status"] == "design"

    def test_department_schemas_are_disjoint(self):
        seen = {}
        for role in DEPARTMENT_ROLES:
            for field in get_fields(role):
                assert field.name not in seen, f"{field.name} in {seen.get(field.name)} and {role}"
                seen[field.name] = role

    def test_joined_objects_are_not_written(self):
        project = _project("design", location={"id": 1, "site_name": "Site A"},
                           surveyor={"id": 1, "first_name": "S"})
        repo = FakeRepository(projects=[project])
        _run(_engine(repo), "design", "save", repo.get_project(7), {"design_owner_id": 2})
        written = repo.calls[-1][2]
        assert "location" not in written
        assert "surveyor" not in written


# ═══════════════════════════════════════════════════════════════════════════
# Validation gates
# ═══════════════════════════════════════════════════════════════════════════


class TestValidationGates:

    def test_required_field_gate_makes_no_external_call(self):
        repo, store = FakeRepository(), FakeAttachmentStore()
        values = {**SURVEY_VALUES, "project_name": ""}
        with pytest.raises(ValidationError) as exc:
            _engine(repo, store).submit("survey", "forward", None, values)
        assert exc.value.field == "project_name"
        assert repo.calls == []
        assert store.calls == []

    def test_work_scope_gate(self):
        values = {
            "project_name": "X",
            "location_id": 5,
            "construction_type": "Renovation",
            "survey_by_id": 1,
            "is_budget_estimated": False,
            "work_scope_design": False,
            "work_scope_bidding": False,
            "work_scope_pm": False,
        }
        repo = FakeRepository()
        with pytest.raises(ValidationError) as exc:
            _engine(repo).submit("survey", "forward", None, values)
        assert exc.value.rule == "work_scope"
        assert repo.calls == []

    def test_work_scope_not_checked_on_save(self):
        values = {"project_name": "X", "work_scope_design": False}
        pending = _engine().submit("survey", "save", None, values)
        assert pending.record["work_scope_design"] is False

    def test_required_satisfied_by_existing_value(self):
        repo = FakeRepository(projects=[_project("design", design_owner_id=2, project_manager_id=3)])
        outcome = _run(_engine(repo), "design", "forward", repo.get_project(7), {})
        assert outcome.status == "bidding"

    def test_required_missing_on_forward(self):
        repo = FakeRepository(projects=[_project("design", design_owner_id=2)])
        with pytest.raises(ValidationError) as exc:
            _engine(repo).submit("design", "forward", repo.get_project(7), {})
        assert exc.value.field == "project_manager_id"

    def test_blanked_name_blocks_forward(self):
        repo = FakeRepository(projects=[_project("survey", **SURVEY_VALUES)])
        with pytest.raises(ValidationError) as exc:
            _engine(repo).submit("survey", "forward", repo.get_project(7), {"project_name": ""})
        assert exc.value.field == "project_name"
        assert repo.projects[7]["project_name"] == "Clinic extension"
        assert repo.projects[7]["status"] == "survey"

    def test_blanked_owner_blocks_forward(self):
        repo = FakeRepository(projects=[_project("design", **DESIGN_VALUES)])
        with pytest.raises(ValidationError) as exc:
            _engine(repo).submit("design", "forward", repo.get_project(7), {"design_owner_id": ""})
        assert exc.value.field == "design_owner_id"
        assert exc.value.rule == "required"
        assert repo.projects[7]["status"] == "design"

    def test_name_cannot_be_blanked_on_save(self):
        repo = FakeRepository(projects=[_project("design")])
        with pytest.raises(ValidationError) as exc:
            _engine(repo).submit("admin", "save", repo.get_project(7), {"project_name": "  "})
        assert exc.value.field == "project_name"

    @pytest.mark.parametrize("raw", ["nan", "inf", "-Infinity", float("nan")])
    def test_non_finite_numbers_rejected(self, raw):
        repo = FakeRepository(projects=[_project("bidding")])
        with pytest.raises(ValidationError) as exc:
            _engine(repo).submit("bidding", "save", repo.get_project(7), {"actual_cost": raw})
        assert exc.value.field == "actual_cost"
        assert repo.calls == [("get_project", 7)]

    def test_save_skips_required_check(self):
        repo = FakeRepository(projects=[_project("bidding")])
        outcome = _run(_engine(repo), "bidding", "save", repo.get_project(7), {})
        assert outcome.status == "bidding"

    def test_new_project_needs_name_even_on_save(self):
        with pytest.raises(ValidationError) as exc:
            _engine().submit("survey", "save", None, {"location_id": 1})
        assert exc.value.field == "project_name"

    def test_invalid_select_option(self):
        with pytest.raises(ValidationError) as exc:
            _engine().submit("survey", "save", None,
                             {"project_name": "X", "construction_type": "Demolition"})
        assert exc.value.field == "construction_type"

    def test_unknown_action(self):
        with pytest.raises(ValidationError):
            _engine().submit("survey", "archive", None, {"project_name": "X"})


# ═══════════════════════════════════════════════════════════════════════════
# Creation round-trip
# ═══════════════════════════════════════════════════════════════════════════


class TestCreation:

    def test_create_touches_only_submitted_fields(self):
        repo = FakeRepository()
        outcome = _run(_engine(repo), "survey", "save", None,
                       {"project_name": "P1", "location_id": 1, "survey_by_id": 1})
        stored = repo.projects[outcome.project["id"]]
        assert stored["status"] == "survey"
        assert stored["project_name"] == "P1"
        assert set(stored) == {"id", "status", "project_name", "location_id", "survey_by_id"}

    def test_create_and_forward_in_one_step(self):
        repo = FakeRepository()
        pending = _engine(repo).submit("survey", "forward", None, SURVEY_VALUES)
        assert pending.record["status"] == "survey"
        assert pending.target_status == "design"
        outcome = pending.confirm()
        assert outcome.status == "design"
        assert outcome.transitioned is True

    @pytest.mark.parametrize("role", ["design", "bidding", "pm"])
    def test_departments_cannot_create(self, role):
        assert can_create(role) is False
        with pytest.raises(PermissionDenied):
            _engine().submit(role, "save", None, {"project_name": "X"})

    def test_admin_create_requires_credential(self):
        repo = FakeRepository()
        with pytest.raises(PermissionDenied):
            _engine(repo).submit("admin", "save", None, {"project_name": "X"}, credential="wrong")
        assert repo.calls == []

    def test_planned_duration_computed_for_survey(self):
        pending = _engine().submit("survey", "save", None,
                                   {**SURVEY_VALUES, "planned_duration": 999})
        assert pending.record["planned_duration"] == 59

    def test_planned_duration_cleared_with_end_date(self):
        repo = FakeRepository(projects=[_project("survey", **SURVEY_VALUES, planned_duration=59)])
        saved = _run(_engine(repo), "survey", "save", repo.get_project(7),
                     {"survey_end_date": ""}).project
        assert saved["survey_end_date"] is None
        assert saved["planned_duration"] is None

    def test_admin_may_override_planned_duration(self):
        repo = FakeRepository(projects=[_project("design", planned_duration=59)])
        saved = _run(_engine(repo), "admin", "save", repo.get_project(7),
                     {"planned_duration": "75"}).project
        assert saved["planned_duration"] == 75


# ═══════════════════════════════════════════════════════════════════════════
# Confirmation continuation
# ═══════════════════════════════════════════════════════════════════════════


class TestConfirmation:

    def test_forward_requires_confirmation_with_prompt(self):
        repo = FakeRepository(projects=[_project("design")])
        pending = _engine(repo).submit("design", "forward", repo.get_project(7), DESIGN_VALUES)
        assert pending.requires_confirmation is True
        assert "bidding" in pending.prompt
        assert pending.preview()["to_status"] == "bidding"

    def test_save_needs_no_confirmation(self):
        pending = _engine().submit("survey", "save", None, {"project_name": "X"})
        assert pending.requires_confirmation is False
        assert pending.prompt is None

    def test_cancel_leaves_external_state_untouched(self):
        repo = FakeRepository(projects=[_project("design")])
        store = FakeAttachmentStore()
        uploads = {"initial_design_pdf": FileUpload("plan.pdf", b"%PDF")}
        pending = _engine(repo, store).submit(
            "design", "forward", repo.get_project(7), DESIGN_VALUES, uploads
        )
        calls_before = list(repo.calls)
        pending.cancel()
        assert repo.calls == calls_before
        assert store.calls == []
        assert repo.projects[7]["status"] == "design"

    def test_pending_is_single_use(self):
        pending = _engine().submit("survey", "save", None, {"project_name": "X"})
        pending.confirm()
        with pytest.raises(RuntimeError):
            pending.confirm()
        with pytest.raises(RuntimeError):
            pending.cancel()


# ═══════════════════════════════════════════════════════════════════════════
# Attachments
# ═══════════════════════════════════════════════════════════════════════════


class TestAttachments:

    def test_upload_locator_is_written_to_field(self):
        repo = FakeRepository(projects=[_project("design")])
        store = FakeAttachmentStore()
        uploads = {"ifc_model": FileUpload("site model.ifc", b"ISO-10303")}
        saved = _run(_engine(repo, store), "design", "save", repo.get_project(7), {}, uploads).project
        assert saved["ifc_model"] == "https://files.example/Clinic_extension/site_model.ifc"
        assert store.calls[0][:2] == ("Clinic extension", "site model.ifc")

    def test_existing_project_name_is_used_for_upload_path(self):
        repo = FakeRepository(projects=[_project("survey", project_name="Old name")])
        store = FakeAttachmentStore()
        _run(_engine(repo, store), "admin", "save", repo.get_project(7),
             {"project_name": "New name"},
             {"boq_pdf": FileUpload("boq.pdf", b"%PDF")})
        assert store.calls[0][0] == "Old name"

    def test_cleared_field_stays_cleared(self):
        repo = FakeRepository(projects=[_project("design", overlap_pdf="https://files.example/x.pdf")])
        project = repo.get_project(7)
        project["overlap_pdf"] = None
        saved = _run(_engine(repo), "design", "save", project, {}).project
        assert saved["overlap_pdf"] is None

    def test_untouched_file_field_keeps_locator(self):
        locator = "https://files.example/Clinic_extension/calc.pdf"
        repo = FakeRepository(projects=[_project("design", calculation_pdf=locator)])
        saved = _run(_engine(repo), "design", "save", repo.get_project(7), {"design_owner_id": 2}).project
        assert saved["calculation_pdf"] == locator

    def test_wrong_extension_rejected_before_any_call(self):
        repo = FakeRepository(projects=[_project("design")])
        store = FakeAttachmentStore()
        project = repo.get_project(7)
        calls_before = list(repo.calls)
        with pytest.raises(ValidationError) as exc:
            _engine(repo, store).submit("design", "save", project, {},
                                        {"rvt_model": FileUpload("model.ifc", b"x")})
        assert exc.value.field == "rvt_model"
        assert repo.calls == calls_before
        assert store.calls == []

    def test_image_accept(self):
        repo = FakeRepository(projects=[_project("bidding")])
        saved = _run(_engine(repo), "bidding", "save", repo.get_project(7), {},
                     {"project_image": FileUpload("render.PNG", b"\x89PNG")}).project
        assert saved["project_image"].endswith("render.PNG")

    def test_upload_for_another_roles_field_rejected(self):
        repo = FakeRepository(projects=[_project("design")])
        with pytest.raises(ValidationError):
            _engine(repo).submit("design", "save", repo.get_project(7), {},
                                 {"boq_pdf": FileUpload("boq.pdf", b"%PDF")})

    def test_upload_failure_prevents_persistence(self):
        repo = FakeRepository(projects=[_project("design")])
        store = FakeAttachmentStore(fail_with="bucket unavailable")
        pending = _engine(repo, store).submit(
            "design", "save", repo.get_project(7), {"design_owner_id": 2},
            {"overlap_pdf": FileUpload("overlap.pdf", b"%PDF")},
        )
        with pytest.raises(UploadError):
            pending.confirm()
        assert not any(c[0] in ("insert_project", "update_project") for c in repo.calls)
        assert repo.projects[7].get("design_owner_id") is None


# ═══════════════════════════════════════════════════════════════════════════
# Ownership and deletion
# ═══════════════════════════════════════════════════════════════════════════


class TestOwnershipAndDeletion:

    def test_role_cannot_edit_other_stage(self):
        repo = FakeRepository(projects=[_project("bidding")])
        with pytest.raises(PermissionDenied):
            _engine(repo).submit("design", "save", repo.get_project(7), {"design_owner_id": 2})

    def test_role_deletes_own_inbox_project(self):
        repo = FakeRepository(projects=[_project("survey")])
        pending = _engine(repo).request_deletion("survey", repo.get_project(7))
        assert pending.requires_confirmation is True
        assert 7 in repo.projects
        pending.confirm()
        assert 7 not in repo.projects

    def test_cancelled_deletion_keeps_project(self):
        repo = FakeRepository(projects=[_project("survey")])
        pending = _engine(repo).request_deletion("survey", repo.get_project(7))
        pending.cancel()
        assert 7 in repo.projects
        assert not any(c[0] == "delete_project" for c in repo.calls)

    def test_role_cannot_delete_other_stage(self):
        repo = FakeRepository(projects=[_project("design")])
        with pytest.raises(PermissionDenied):
            _engine(repo).request_deletion("survey", repo.get_project(7))

    @pytest.mark.parametrize("credential", [None, "", "11111"])
    def test_admin_delete_needs_credential(self, credential):
        repo = FakeRepository(projects=[_project("pm")])
        with pytest.raises(PermissionDenied):
            _engine(repo).request_deletion("admin", repo.get_project(7), credential=credential)

    def test_admin_delete_with_credential(self):
        repo = FakeRepository(projects=[_project("pm")])
        _engine(repo).request_deletion("admin", repo.get_project(7), credential=ADMIN_CREDENTIAL).confirm()
        assert repo.projects == {}

    def test_unconfigured_credential_denies_admin(self):
        repo = FakeRepository(projects=[_project("pm")])
        engine = WorkflowEngine(repo, FakeAttachmentStore(), admin_password=None)
        with pytest.raises(PermissionDenied):
            engine.request_deletion("admin", repo.get_project(7), credential="anything")


# ═══════════════════════════════════════════════════════════════════════════
# Helpers and capabilities
# ═══════════════════════════════════════════════════════════════════════════


class TestHelpers:

    def test_available_actions(self):
        assert available_actions("admin") == ["save"]
        assert available_actions("pm") == ["save", "complete"]
        for role in ("survey", "design", "bidding"):
            assert available_actions(role) == ["save", "forward"]
        assert available_actions("guest") == []

    def test_planned_duration(self):
        assert compute_planned_duration("2026-01-01", "2026-01-31") == 30
        assert compute_planned_duration("2026-01-01", "2026-01-01") == 0
        assert compute_planned_duration("2026-02-01", "2026-01-01") is None
        assert compute_planned_duration(None, "2026-01-01") is None

    def test_coerce_checkbox_strings(self):
        field = next(f for f in get_fields("survey") if f.name == "work_scope_pm")
        assert coerce_value(field, "on") is True
        assert coerce_value(field, "false") is False
        assert coerce_value(field, None) is False

    def test_coerce_number_rejects_text(self):
        field = next(f for f in get_fields("survey") if f.name == "budget")
        with pytest.raises(ValidationError):
            coerce_value(field, "a lot")
        assert coerce_value(field, "") is None
        assert coerce_value(field, "2500.5") == 2500.5

    def test_coerce_date_formats(self):
        field = next(f for f in get_fields("survey") if f.name == "survey_start_date")
        assert coerce_value(field, "15.03.2026").isoformat() == "2026-03-15"
        with pytest.raises(ValidationError):
            coerce_value(field, "next week")
