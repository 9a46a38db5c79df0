"""
Process Mapping Studio
Session summary — a short model-written recap stored on the session.

Each run overwrites ``context_summary``; earlier summaries are not kept.
"""

import logging

from app.core.exceptions import LLMResponseError, NotFoundError
from app.orchestration.store import ArtifactStore
from app.orchestration.types import TurnState

logger = logging.getLogger(__name__)


def build_digest(store: ArtifactStore, workspace_id: str, session, metadata: dict) -> str:
    lines = [f"Session Title: {session.title or 'Untitled'}"]

    project = store.get_project(workspace_id, metadata.get("project_id") or session.project_id)
    if project is not None:
        lines.append(f"Project: {project.name}")

    processes = store.processes_by_ids(workspace_id, metadata.get("process_ids", []))
    if processes:
        lines += ["", f"Processes ({len(processes)}):"]
        for process in processes:
            lines.append(
                f"- {process.name}: {len(process.steps)} steps, "
                f"{len(process.opportunities)} opportunities"
            )

    blueprint_count = len(store.blueprints_by_ids(workspace_id, metadata.get("blueprint_ids", [])))
    if blueprint_count:
        lines += ["", f"Blueprints: {blueprint_count} generated"]
    use_case_count = len(store.use_cases_by_ids(workspace_id, metadata.get("ai_use_case_ids", [])))
    if use_case_count:
        lines += ["", f"AI Use Cases: {use_case_count} registered for governance"]
    return "\n".join(lines)


class SessionSummarizer:

    def __init__(self, store: ArtifactStore, gateway, prompt_registry):
        self.store = store
        self.gateway = gateway
        self.prompt_registry = prompt_registry

    def run(self, turn: TurnState):
        session = self.store.get_session(turn.session_id)
        if session is None or session.workspace_id != turn.workspace_id:
            raise NotFoundError("AssistantSession", turn.session_id, turn.workspace_id)

        digest = build_digest(self.store, turn.workspace_id, session, turn.metadata)
        system, user = self.prompt_registry.render_pair("session_summary", digest=digest)
        summary = self.gateway.complete(
            system, [{"role": "user", "content": user}],
            temperature=0.5, max_tokens=200,
            purpose="session_summary", workspace_id=turn.workspace_id,
        ).strip()
        if not summary:
            raise LLMResponseError("Empty session summary", raw=summary)

        session.context_summary = summary
        self.store.commit()
        logger.info("Updated summary for session %s", session.id,
                    extra={"workspace_id": turn.workspace_id, "session_id": session.id})
        turn.artifacts.updated_summary = summary
