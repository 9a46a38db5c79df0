"""
Process Mapping Studio
Session service — sessions, conversation history and orchestration turns.

A turn is serialized per session, runs the orchestrator and, only when the
turn succeeded, stores both messages and merges the metadata. The LLM gateway,
prompt registry and turn locks are lazy singletons on the Flask app.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.ai.gateway import LLMGateway
from app.ai.prompt_registry import PromptRegistry
from app.ai.schemas import SessionTitle, parse_completion
from app.core.exceptions import LLMError, NotFoundError, ValidationError
from app.models import db
from app.models.session import AssistantSession
from app.orchestration import (
    OrchestrationContext,
    OrchestrationResult,
    OrchestrationSettings,
    Orchestrator,
)
from app.orchestration.metadata import MetadataStore, TurnLocks, merge_metadata
from app.orchestration.store import ArtifactStore
from app.orchestration.suggestions import compute_next_step

logger = logging.getLogger(__name__)

_TITLE_MESSAGES = 3
_TITLE_CONTEXT_CHARS = 300
_TITLE_PROCESS_NAMES = 2


def get_gateway():
    if not hasattr(current_app, "_llm_gateway"):
        current_app._llm_gateway = LLMGateway.from_config(current_app.config)
    return current_app._llm_gateway


def get_prompt_registry():
    if not hasattr(current_app, "_prompt_registry"):
        current_app._prompt_registry = PromptRegistry()
    return current_app._prompt_registry


def _get_turn_locks() -> TurnLocks:
    if not hasattr(current_app, "_turn_locks"):
        current_app._turn_locks = TurnLocks()
    return current_app._turn_locks


def _settings() -> OrchestrationSettings:
    return OrchestrationSettings.from_config(current_app.config)


def get_orchestrator(store: ArtifactStore | None = None) -> Orchestrator:
    return Orchestrator(
        store or ArtifactStore(db.session),
        get_gateway(),
        get_prompt_registry(),
        _settings(),
    )


# ── Sessions ─────────────────────────────────────────────────────────────


def create_session(data: dict) -> AssistantSession:
    store = ArtifactStore(db.session)
    workspace_id = (data.get("workspace_id") or "").strip()
    if not workspace_id:
        raise ValidationError("workspace_id is required", details={"field": "workspace_id"})
    if store.get_workspace(workspace_id) is None:
        raise NotFoundError("Workspace", workspace_id)

    project_id = data.get("project_id")
    if project_id and store.get_project(workspace_id, project_id) is None:
        raise NotFoundError("Project", project_id, workspace_id)

    metadata = {"project_id": project_id} if project_id else {}
    session = AssistantSession(
        workspace_id=workspace_id,
        project_id=project_id,
        title=(data.get("title") or "").strip() or "New session",
        metadata_json=merge_metadata(None, metadata),
    )
    db.session.add(session)
    db.session.commit()
    logger.info("Created session %s", session.id, extra={"workspace_id": workspace_id})
    return session


def get_session(session_id: str) -> AssistantSession:
    session = db.session.get(AssistantSession, session_id)
    if session is None:
        raise NotFoundError("AssistantSession", session_id)
    return session


def list_messages(session_id: str) -> list[dict]:
    session = get_session(session_id)
    return [m.to_dict() for m in session.messages]


def next_step(session_id: str) -> dict | None:
    session = get_session(session_id)
    store = ArtifactStore(db.session)
    metadata = session.session_metadata
    process_ids = metadata["process_ids"]
    suggestion = compute_next_step(
        process_count=len(process_ids),
        total_step_count=store.total_step_count(session.workspace_id, process_ids),
        opportunity_count=len(metadata["opportunity_ids"]),
        blueprint_count=len(metadata["blueprint_ids"]),
        ai_use_case_count=len(metadata["ai_use_case_ids"]),
    )
    return suggestion.to_dict() if suggestion else None


# ── Turns ────────────────────────────────────────────────────────────────


def run_turn(session_id: str, message: str) -> OrchestrationResult:
    """Run one orchestration turn. Failed turns leave no trace in the database."""
    message = (message or "").strip()
    if not message:
        raise ValidationError("message is required", details={"field": "message"})

    settings = _settings()
    store = ArtifactStore(db.session)
    with _get_turn_locks().hold(session_id):
        session = get_session(session_id)
        history = [
            {"role": m.role, "content": m.content}
            for m in store.recent_messages(session.id, current_app.config["SESSION_HISTORY_LIMIT"])
        ]
        context = OrchestrationContext(
            workspace_id=session.workspace_id,
            session_id=session.id,
            current_metadata=session.session_metadata,
            conversation_history=history,
            session_title=session.title,
        )

        result = get_orchestrator(store).orchestrate(context, message)
        if not result.success:
            store.rollback()
            return result

        store.add_message(session.id, "user", message)
        store.add_message(session.id, "assistant", result.assistant_message)
        store.commit()
        result.updated_metadata = MetadataStore(
            db.session, settings.metadata_merge_retries,
        ).commit(session.id, result.updated_metadata)

        if current_app.config.get("SESSION_AUTO_TITLE") and result.executed:
            process_names = [p["name"] for p in result.artifacts.created_processes]
            maybe_update_title(store, session.id, process_names)
    return result


def is_generic_title(title: str | None) -> bool:
    lowered = (title or "").strip().lower()
    return not lowered or "new session" in lowered or "untitled" in lowered


def maybe_update_title(store: ArtifactStore, session_id: str,
                       process_names: list[str]) -> str | None:
    """Replace a placeholder title with a generated one; failures are logged only."""
    session = store.get_session(session_id)
    if session is None or not is_generic_title(session.title):
        return None

    user_messages = store.first_user_messages(session_id, _TITLE_MESSAGES)
    if not user_messages and not process_names:
        return None

    parts = []
    if user_messages:
        parts.append(f'User messages: "{" ".join(user_messages)[:_TITLE_CONTEXT_CHARS]}"')
    if process_names:
        parts.append(f"Processes created: {', '.join(process_names[:_TITLE_PROCESS_NAMES])}")

    try:
        system, user = get_prompt_registry().render_pair("session_title", context="\n".join(parts))
        raw = get_gateway().complete(
            system, [{"role": "user", "content": user}],
            json_mode=True, temperature=0.7, max_tokens=100,
            purpose="session_title", workspace_id=session.workspace_id,
        )
        title = parse_completion(raw, SessionTitle).title
        session.title = title
        store.commit()
    except (LLMError, SQLAlchemyError) as e:
        store.rollback()
        logger.warning("Session title update failed for %s: %s", session_id, e,
                       extra={"session_id": session_id})
        return None

    logger.info("Session %s retitled to %r", session_id, title, extra={"session_id": session_id})
    return title
