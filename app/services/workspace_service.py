"""Workspace CRUD and artifact lookups for the read-only API."""

from __future__ import annotations

from sqlalchemy import select

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.blueprint import Blueprint
from app.models.governance import AiUseCase
from app.models.process import Process
from app.models.workspace import Workspace
from app.orchestration.store import ArtifactStore


def create_workspace(data: dict) -> Workspace:
    name = str(data.get("name", "") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})
    workspace = Workspace(name=name)
    db.session.add(workspace)
    db.session.commit()
    return workspace


def list_workspaces() -> list[Workspace]:
    return list(db.session.scalars(select(Workspace).order_by(Workspace.created_at.desc())).all())


def list_processes(workspace_id: str) -> list[Process]:
    store = ArtifactStore(db.session)
    if store.get_workspace(workspace_id) is None:
        raise NotFoundError("Workspace", workspace_id)
    return store.workspace_processes(workspace_id)


def _get_or_raise(model, resource: str, obj_id: str):
    obj = db.session.get(model, obj_id)
    if obj is None:
        raise NotFoundError(resource, obj_id)
    return obj


def get_process(process_id: str) -> Process:
    return _get_or_raise(Process, "Process", process_id)


def get_blueprint(blueprint_id: str) -> Blueprint:
    return _get_or_raise(Blueprint, "Blueprint", blueprint_id)


def get_use_case(use_case_id: str) -> AiUseCase:
    return _get_or_raise(AiUseCase, "AiUseCase", use_case_id)
