"""
Session Service — explicit per-user session context for the presentation layer.

A ``SessionContext`` holds what a client session tracks between actions:
current role, admin search term, the project open in the editor, the files
picked but not yet saved, and the last project collection fetched from the
repository. Every operation returns a new context; nothing is global.

After a successful submission or deletion the caller must ``refresh`` before
projecting again, so the view never shows state the repository does not hold.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace

from tracker.core.exceptions import PermissionDenied, ProjectClosedError, ValidationError
from tracker.models.project import CLOSED_STATUS
from tracker.services.field_schema import FieldType, get_field, is_valid_role
from tracker.services.view_projection import ProjectionResult, visible_projects

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionContext:
    role: str = "survey"
    search_term: str = ""
    editing_project: dict | None = None
    pending_uploads: dict = field(default_factory=dict)
    projects: tuple = ()

    def view(self) -> ProjectionResult:
        return visible_projects(self.role, list(self.projects), self.search_term)


def change_role(ctx: SessionContext, role: str) -> SessionContext:
    """Switch role; closes any open edit session and drops pending files."""
    if not is_valid_role(role):
        raise PermissionDenied(role, "open the workspace", "unknown role")
    logger.debug("Role changed %s → %s", ctx.role, role)
    return replace(ctx, role=role, editing_project=None, pending_uploads={}, search_term="")


def open_project(ctx: SessionContext, project: dict | None) -> SessionContext:
    """Open ``project`` in the editor, or a blank form when None."""
    editing = copy.deepcopy(project) if project is not None else None
    return replace(ctx, editing_project=editing, pending_uploads={})


def close_project(ctx: SessionContext) -> SessionContext:
    return replace(ctx, editing_project=None, pending_uploads={})


def search(ctx: SessionContext, term: str | None) -> SessionContext:
    return replace(ctx, search_term=(term or "").strip())


def clear_search(ctx: SessionContext) -> SessionContext:
    return replace(ctx, search_term="")


def attach_file(ctx: SessionContext, field_name: str, upload) -> SessionContext:
    """Stage ``upload`` for ``field_name``; sent on the next submission."""
    _file_field(ctx, field_name)
    return replace(ctx, pending_uploads={**ctx.pending_uploads, field_name: upload})


def remove_attachment(ctx: SessionContext, field_name: str) -> SessionContext:
    """Clear one file field of the open project, pending the next save.

    The stored record is not touched; the cleared value travels with the
    next ``submit`` as part of the current project.
    """
    _file_field(ctx, field_name)
    editing = ctx.editing_project
    if editing is not None:
        if editing.get("status") == CLOSED_STATUS:
            raise ProjectClosedError(editing.get("id"))
        editing = {**editing, field_name: None}
    pending = {k: v for k, v in ctx.pending_uploads.items() if k != field_name}
    return replace(ctx, editing_project=editing, pending_uploads=pending)


def refresh(ctx: SessionContext, repository) -> SessionContext:
    """Re-fetch the project collection from the repository."""
    return replace(ctx, projects=tuple(repository.list_projects()))


def _file_field(ctx: SessionContext, field_name: str):
    descriptor = get_field(ctx.role, field_name)
    if descriptor is None or descriptor.type is not FieldType.FILE:
        raise ValidationError(
            f"'{field_name}' is not an attachment field for the {ctx.role} team",
            field=field_name,
        )
    return descriptor
