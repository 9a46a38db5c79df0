"""
Process Mapping Studio
Orchestration Router — runs one conversational turn.

Flow:
    1. Classify the message (failure → success=False, metadata unchanged)
    2. Gate on confidence (clarify → one question, nothing written)
    3. Run decision.actions strictly in order through the handler table
    4. Merge ids produced by the actions into the metadata document
    5. Attach the next-step suggestion

Per-action failures are rolled back, logged and skipped. A process reference
that cannot be resolved stops the remaining actions and turns the reply into
a disambiguation request.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.ai.schemas import Action
from app.core.exceptions import (
    ClassificationError,
    LLMError,
    NotFoundError,
    ProcessResolutionError,
    ValidationError,
)
from app.orchestration.actions import (
    BlueprintGenerator,
    GovernanceFlow,
    OpportunityScanner,
    ProcessExtractor,
    ProcessRefiner,
    SessionSummarizer,
)
from app.orchestration.classifier import IntentClassifier, session_state_digest
from app.orchestration.gate import AMBIGUOUS_REFERENCE, Clarifier, ConfidenceGate
from app.orchestration.metadata import merge_metadata
from app.orchestration.resolver import ProcessResolver
from app.orchestration.store import ArtifactStore
from app.orchestration.suggestions import compute_next_step
from app.orchestration.types import (
    ActionOutcome,
    Clarification,
    NextStepSuggestion,
    OrchestrationContext,
    OrchestrationResult,
    OrchestrationSettings,
    TurnState,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "I encountered an error processing your request. Please try again."

# Action → attribute of Orchestrator holding its handler; None means reply only
_HANDLERS: dict[Action, str | None] = {
    Action.EXTRACT_PROCESS: "extractor",
    Action.REFINE_PROCESS: "refiner",
    Action.SCAN_OPPORTUNITIES: "scanner",
    Action.GENERATE_BLUEPRINT: "blueprints",
    Action.CREATE_USE_CASE: "governance",
    Action.GENERATE_SUMMARY: "summarizer",
    Action.RESPOND_ONLY: None,
}

_missing = set(Action) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"No handler registered for actions: {sorted(a.value for a in _missing)}")

_ACTION_ERRORS = (LLMError, ValidationError, NotFoundError, SQLAlchemyError)


def disambiguation_message(error: ProcessResolutionError) -> str:
    if error.candidates:
        names = ", ".join(f"'{name}'" for name in error.candidates)
        return f"I'm not sure which process you mean. Is it one of these: {names}?"
    return "I couldn't find a process to update. Which process do you mean?"


class Orchestrator:
    """
    Session orchestration engine.

    Collaborators are injected: ``store`` (persistence port), ``gateway``
    (anything with ``complete()``), ``prompt_registry`` and ``settings``.
    """

    def __init__(self, store: ArtifactStore, gateway, prompt_registry,
                 settings: OrchestrationSettings | None = None):
        self.store = store
        self.gateway = gateway
        self.prompt_registry = prompt_registry
        self.settings = settings or OrchestrationSettings()

        self.resolver = ProcessResolver(store, self.settings)
        self.classifier = IntentClassifier(store, gateway, prompt_registry, self.settings)
        self.gate = ConfidenceGate(self.settings)
        self.clarifier = Clarifier(gateway, prompt_registry)

        self.extractor = ProcessExtractor(store)
        self.refiner = ProcessRefiner(store, self.resolver, self.settings)
        self.scanner = OpportunityScanner(store, gateway, prompt_registry, self.settings)
        self.blueprints = BlueprintGenerator(store, gateway, prompt_registry)
        self.governance = GovernanceFlow(store, gateway, prompt_registry, self.settings)
        self.summarizer = SessionSummarizer(store, gateway, prompt_registry)

    # ── Turn ─────────────────────────────────────────────────────────────

    def orchestrate(self, context: OrchestrationContext, user_message: str) -> OrchestrationResult:
        try:
            decision = self.classifier.classify(context, user_message)
        except ClassificationError as e:
            return OrchestrationResult(
                success=False,
                assistant_message=GENERIC_FAILURE_MESSAGE,
                updated_metadata=merge_metadata(context.current_metadata, None),
                error=str(e),
            )

        process_count = len(context.current_metadata["process_ids"])
        reason = self.gate.check(decision, process_count)
        if reason is not None:
            return self._clarify(context, user_message, decision.intent.value, reason)

        turn = TurnState(context, decision)
        result = OrchestrationResult(
            success=True,
            assistant_message=decision.explanation,
            updated_metadata=context.current_metadata,
            intent=decision.intent.value,
        )

        attempted = succeeded = 0
        for action in decision.actions:
            attr = _HANDLERS[action]
            if attr is None:
                result.actions.append(ActionOutcome(action.value, "success"))
                continue

            attempted += 1
            try:
                getattr(self, attr).run(turn)
            except ProcessResolutionError as e:
                self.store.rollback()
                logger.info("Halting turn on unresolved process reference: %s", e,
                            extra={"session_id": context.session_id, "action": action.value})
                message = disambiguation_message(e)
                result.assistant_message = message
                result.clarification = Clarification(message, AMBIGUOUS_REFERENCE)
                result.actions.append(ActionOutcome(action.value, "halted", str(e)))
                break
            except _ACTION_ERRORS as e:
                self.store.rollback()
                logger.warning("Action %s failed: %s", action.value, e,
                               extra={"session_id": context.session_id, "action": action.value})
                result.actions.append(ActionOutcome(action.value, "failed", str(e)))
                continue
            succeeded += 1
            result.actions.append(ActionOutcome(action.value, "success"))

        if attempted and not succeeded and result.clarification is None:
            result.success = False
            result.error = "; ".join(a.error for a in result.actions if a.error)

        result.artifacts = turn.artifacts
        result.ui = turn.ui
        result.updated_metadata = merge_metadata(context.current_metadata, turn.metadata)
        result.next_step_suggestion = self.next_step(context.workspace_id, result.updated_metadata)
        return result

    def _clarify(self, context: OrchestrationContext, user_message: str,
                 intent: str, reason: str) -> OrchestrationResult:
        message = self.clarifier.ask(
            user_message, reason,
            session_state_digest(context.current_metadata),
            workspace_id=context.workspace_id,
        )
        metadata = merge_metadata(context.current_metadata, None)
        return OrchestrationResult(
            success=True,
            assistant_message=message,
            updated_metadata=metadata,
            intent=intent,
            clarification=Clarification(message, reason),
            next_step_suggestion=self.next_step(context.workspace_id, metadata),
        )

    # ── Suggestions ──────────────────────────────────────────────────────

    def next_step(self, workspace_id: str, metadata: dict) -> NextStepSuggestion | None:
        process_ids = metadata.get("process_ids") or []
        return compute_next_step(
            process_count=len(process_ids),
            total_step_count=self.store.total_step_count(workspace_id, process_ids),
            opportunity_count=len(metadata.get("opportunity_ids") or []),
            blueprint_count=len(metadata.get("blueprint_ids") or []),
            ai_use_case_count=len(metadata.get("ai_use_case_ids") or []),
        )
