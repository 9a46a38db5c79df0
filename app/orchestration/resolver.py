"""
Process Mapping Studio
Artifact Resolver — maps a process reference from the conversation to a row.

Resolution order:
    1. explicit id that still exists in the workspace
    2. best fuzzy name match among recent candidate processes
    3. most recently referenced process of the session
    4. ProcessResolutionError (never guess)
"""

import logging

from app.core.exceptions import ProcessResolutionError
from app.models.process import Process
from app.orchestration.similarity import Scorer, best_match, similarity
from app.orchestration.store import ArtifactStore
from app.orchestration.types import OrchestrationSettings

logger = logging.getLogger(__name__)


class ProcessResolver:

    def __init__(self, store: ArtifactStore, settings: OrchestrationSettings,
                 scorer: Scorer = similarity):
        self.store = store
        self.settings = settings
        self.scorer = scorer

    def candidates(self, workspace_id: str, session_process_ids: list[str]) -> list[Process]:
        return self.store.recent_processes(
            workspace_id,
            self.settings.process_match_candidates,
            restrict_to=session_process_ids or None,
        )

    def resolve(
        self,
        workspace_id: str,
        *,
        process_id: str | None = None,
        name: str | None = None,
        session_process_ids: list[str] | None = None,
    ) -> Process:
        session_process_ids = list(session_process_ids or [])

        if process_id:
            process = self.store.get_process(workspace_id, process_id)
            if process is not None:
                return process
            logger.info("Referenced process %s no longer exists; falling back", process_id,
                        extra={"workspace_id": workspace_id})

        candidates = self.candidates(workspace_id, session_process_ids)
        if name:
            match = best_match(
                name, candidates, key=lambda p: p.name,
                threshold=self.settings.process_match_threshold,
                scorer=self.scorer,
            )
            if match is not None:
                process, score = match
                logger.debug("Resolved %r to process %s (score %.2f)", name, process.id, score)
                return process

        if session_process_ids:
            process = self.store.get_process(workspace_id, session_process_ids[-1])
            if process is not None:
                return process

        raise ProcessResolutionError(
            reference=name or process_id,
            candidates=[p.name for p in candidates],
        )
