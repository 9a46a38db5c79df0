"""
Process Mapping Studio
Artifact Store — the persistence port of the orchestration engine.

Wraps one SQLAlchemy session. Every lookup is scoped to a workspace so an id
from another tenant resolves to ``None`` rather than leaking a row. Handlers
receive the store explicitly and never touch ``db.session`` directly.
"""

import logging

from sqlalchemy import func, select

from app.models import db
from app.models.blueprint import Blueprint
from app.models.governance import AiUseCase
from app.models.opportunity import Opportunity
from app.models.process import Process, ProcessLink, ProcessStep
from app.models.session import AssistantSession, SessionMessage
from app.models.workspace import Project, Workspace

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "Default project"


class ArtifactStore:
    """CRUD and upsert helpers over the session's artifact graph."""

    def __init__(self, session=None):
        self.session = session or db.session

    # ── Transaction control ──────────────────────────────────────────────

    def add(self, obj):
        self.session.add(obj)
        return obj

    def delete(self, obj):
        self.session.delete(obj)

    def flush(self):
        self.session.flush()

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    # ── Workspaces, projects & sessions ──────────────────────────────────

    def get_workspace(self, workspace_id: str) -> Workspace | None:
        return self.session.get(Workspace, workspace_id)

    def get_project(self, workspace_id: str, project_id: str | None) -> Project | None:
        if not project_id:
            return None
        project = self.session.get(Project, project_id)
        if project is None or project.workspace_id != workspace_id:
            return None
        return project

    def ensure_project(self, workspace_id: str, project_id: str | None) -> Project:
        """Return the session project, creating the workspace default project if needed."""
        project = self.get_project(workspace_id, project_id)
        if project is not None:
            return project

        project = self.session.scalars(
            select(Project)
            .where(Project.workspace_id == workspace_id, Project.is_default.is_(True))
            .order_by(Project.created_at.asc())
            .limit(1)
        ).first()
        if project is None:
            project = Project(
                workspace_id=workspace_id,
                name=DEFAULT_PROJECT_NAME,
                description="Created automatically for assistant sessions",
                is_default=True,
            )
            self.session.add(project)
            self.session.flush()
            logger.info("Created default project %s", project.id,
                        extra={"workspace_id": workspace_id})
        return project

    def get_session(self, session_id: str) -> AssistantSession | None:
        return self.session.get(AssistantSession, session_id)

    def add_message(self, session_id: str, role: str, content: str) -> SessionMessage:
        msg = SessionMessage(session_id=session_id, role=role, content=content)
        self.session.add(msg)
        return msg

    def recent_messages(self, session_id: str, limit: int) -> list[SessionMessage]:
        """Last *limit* messages of a session, oldest first."""
        rows = self.session.scalars(
            select(SessionMessage)
            .where(SessionMessage.session_id == session_id)
            .order_by(SessionMessage.id.desc())
            .limit(limit)
        ).all()
        return list(reversed(rows))

    def first_user_messages(self, session_id: str, limit: int) -> list[str]:
        return list(self.session.scalars(
            select(SessionMessage.content)
            .where(SessionMessage.session_id == session_id, SessionMessage.role == "user")
            .order_by(SessionMessage.id.asc())
            .limit(limit)
        ).all())

    # ── Processes ────────────────────────────────────────────────────────

    def get_process(self, workspace_id: str, process_id: str | None) -> Process | None:
        if not process_id:
            return None
        process = self.session.get(Process, process_id)
        if process is None or process.workspace_id != workspace_id:
            return None
        return process

    def processes_by_ids(self, workspace_id: str, process_ids: list[str]) -> list[Process]:
        """Existing processes for *process_ids*, in the order the ids were given."""
        if not process_ids:
            return []
        rows = self.session.scalars(
            select(Process).where(
                Process.workspace_id == workspace_id, Process.id.in_(process_ids),
            )
        ).all()
        by_id = {p.id: p for p in rows}
        return [by_id[pid] for pid in process_ids if pid in by_id]

    def recent_processes(
        self,
        workspace_id: str,
        limit: int,
        restrict_to: list[str] | None = None,
    ) -> list[Process]:
        """Most recently created processes of a workspace, newest first."""
        stmt = select(Process).where(Process.workspace_id == workspace_id)
        if restrict_to:
            stmt = stmt.where(Process.id.in_(restrict_to))
        stmt = stmt.order_by(Process.created_at.desc()).limit(limit)
        return list(self.session.scalars(stmt).all())

    def workspace_processes(self, workspace_id: str) -> list[Process]:
        return list(self.session.scalars(
            select(Process)
            .where(Process.workspace_id == workspace_id)
            .order_by(Process.created_at.desc())
        ).all())

    def replace_links(self, process: Process, ordered_steps: list[ProcessStep]) -> list[ProcessLink]:
        """Drop every link of *process* and chain *ordered_steps* i → i+1."""
        process.links = []
        self.session.flush()
        links = [
            ProcessLink(
                process_id=process.id,
                from_step_id=src.id,
                to_step_id=dst.id,
            )
            for src, dst in zip(ordered_steps, ordered_steps[1:])
        ]
        process.links.extend(links)
        self.session.flush()
        return links

    def total_step_count(self, workspace_id: str, process_ids: list[str]) -> int:
        if not process_ids:
            return 0
        return self.session.scalar(
            select(func.count(ProcessStep.id))
            .join(Process, Process.id == ProcessStep.process_id)
            .where(Process.workspace_id == workspace_id, Process.id.in_(process_ids))
        ) or 0

    # ── Opportunities ────────────────────────────────────────────────────

    def find_step_opportunity(self, process_id: str, step_id: str) -> Opportunity | None:
        return self.session.scalars(
            select(Opportunity).where(
                Opportunity.process_id == process_id, Opportunity.step_id == step_id,
            )
        ).first()

    def opportunities_for_processes(self, process_ids: list[str]) -> list[Opportunity]:
        if not process_ids:
            return []
        return list(self.session.scalars(
            select(Opportunity)
            .where(Opportunity.process_id.in_(process_ids))
            .order_by(Opportunity.impact_score.desc(), Opportunity.created_at.asc())
        ).all())

    def opportunities_by_ids(self, workspace_id: str, opportunity_ids: list[str]) -> list[Opportunity]:
        if not opportunity_ids:
            return []
        return list(self.session.scalars(
            select(Opportunity)
            .join(Process, Process.id == Opportunity.process_id)
            .where(Process.workspace_id == workspace_id, Opportunity.id.in_(opportunity_ids))
            .order_by(Opportunity.impact_score.desc(), Opportunity.created_at.asc())
        ).all())

    # ── Blueprints ───────────────────────────────────────────────────────

    def get_blueprint(self, workspace_id: str, blueprint_id: str) -> Blueprint | None:
        blueprint = self.session.get(Blueprint, blueprint_id)
        if blueprint is None or blueprint.workspace_id != workspace_id:
            return None
        return blueprint

    def next_blueprint_version(self, project_id: str) -> int:
        current = self.session.scalar(
            select(func.max(Blueprint.version)).where(Blueprint.project_id == project_id)
        )
        return (current or 0) + 1

    def blueprints_by_ids(self, workspace_id: str, blueprint_ids: list[str]) -> list[Blueprint]:
        if not blueprint_ids:
            return []
        return list(self.session.scalars(
            select(Blueprint)
            .where(Blueprint.workspace_id == workspace_id, Blueprint.id.in_(blueprint_ids))
            .order_by(Blueprint.created_at.asc())
        ).all())

    # ── Governance ───────────────────────────────────────────────────────

    def get_use_case(self, workspace_id: str, use_case_id: str) -> AiUseCase | None:
        use_case = self.session.get(AiUseCase, use_case_id)
        if use_case is None or use_case.workspace_id != workspace_id:
            return None
        return use_case

    def use_cases_by_ids(self, workspace_id: str, use_case_ids: list[str]) -> list[AiUseCase]:
        if not use_case_ids:
            return []
        return list(self.session.scalars(
            select(AiUseCase)
            .where(AiUseCase.workspace_id == workspace_id, AiUseCase.id.in_(use_case_ids))
            .order_by(AiUseCase.created_at.asc())
        ).all())
