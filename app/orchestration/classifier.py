"""
Process Mapping Studio
Intent Classifier — one JSON-mode call that returns the turn's Decision.

The prompt carries the names and ids of the session's artifacts so the model
can point at existing rows instead of inventing new ones. Anything short of a
schema-valid Decision fails the turn with ``ClassificationError``.
"""

import logging

from app.ai.schemas import Decision, parse_completion
from app.core.exceptions import ClassificationError, LLMError
from app.orchestration.store import ArtifactStore
from app.orchestration.types import OrchestrationContext, OrchestrationSettings

logger = logging.getLogger(__name__)

_DIGEST_LINES = (
    ("process_ids", "process(es) created"),
    ("opportunity_ids", "automation opportunity(ies) identified"),
    ("blueprint_ids", "blueprint(s) generated"),
    ("ai_use_case_ids", "AI use case(s) registered"),
)


def session_state_digest(metadata: dict) -> str:
    """Artifact counts of the session; empty string when it has none."""
    parts = ["CURRENT SESSION STATE:"]
    for key, label in _DIGEST_LINES:
        count = len(metadata.get(key) or [])
        if count:
            parts.append(f"- {count} {label}")
    return "\n".join(parts) if len(parts) > 1 else ""


def _names(rows, attr: str) -> str:
    listed = [f'"{getattr(r, attr)}" (ID: {r.id})' for r in rows]
    return ", ".join(listed) if listed else "none"


class IntentClassifier:

    def __init__(self, store: ArtifactStore, gateway, prompt_registry,
                 settings: OrchestrationSettings):
        self.store = store
        self.gateway = gateway
        self.prompt_registry = prompt_registry
        self.settings = settings

    def artifact_names(self, context: OrchestrationContext) -> dict:
        ws = context.workspace_id
        meta = context.current_metadata
        return {
            "processes": _names(self.store.processes_by_ids(ws, meta["process_ids"]), "name"),
            "opportunities": _names(self.store.opportunities_by_ids(ws, meta["opportunity_ids"]), "title"),
            "blueprints": _names(self.store.blueprints_by_ids(ws, meta["blueprint_ids"]), "title"),
            "use_cases": _names(self.store.use_cases_by_ids(ws, meta["ai_use_case_ids"]), "title"),
        }

    def build_messages(self, context: OrchestrationContext, user_message: str) -> list[dict]:
        messages = []
        digest = session_state_digest(context.current_metadata)
        if digest:
            messages.append({"role": "system", "content": digest})
        window = self.settings.history_window
        history = context.conversation_history[-window:] if window > 0 else []
        for msg in history:
            if msg.get("role") in ("user", "assistant") and msg.get("content"):
                messages.append({"role": msg["role"], "content": msg["content"]})
        messages.append({"role": "user", "content": user_message})
        return messages

    def classify(self, context: OrchestrationContext, user_message: str) -> Decision:
        system, _ = self.prompt_registry.render_pair(
            "intent_classification", **self.artifact_names(context),
        )
        try:
            raw = self.gateway.complete(
                system, self.build_messages(context, user_message),
                json_mode=True, temperature=0.7, max_tokens=2000,
                purpose="intent_classification", workspace_id=context.workspace_id,
            )
            decision = parse_completion(raw, Decision)
        except LLMError as e:
            logger.warning("Intent classification failed: %s", e,
                           extra={"workspace_id": context.workspace_id,
                                  "session_id": context.session_id})
            raise ClassificationError(str(e)) from e

        logger.info("Classified message as %s", decision.intent.value,
                    extra={"session_id": context.session_id, "intent": decision.intent.value})
        return decision
