"""
Process Mapping Studio
Confidence & Clarification Gate.

Decides whether a Decision may execute. Two independent axes are checked:
intent confidence (threshold grows with the number of session processes) and
extraction confidence (fixed). A score equal to its threshold passes.
"""

import logging

from app.ai.schemas import Decision, Intent
from app.core.exceptions import LLMError
from app.orchestration.types import OrchestrationSettings

logger = logging.getLogger(__name__)

LOW_INTENT_CONFIDENCE = "low_intent_confidence"
LOW_EXTRACTION_CONFIDENCE = "low_extraction_confidence"
AMBIGUOUS_REFERENCE = "ambiguous_reference"

FALLBACK_QUESTION = "Could you provide more details about what you'd like to do?"

ACTIONABLE_INTENTS = frozenset({
    Intent.PROCESS_DESCRIPTION,
    Intent.REFINE_PROCESS,
    Intent.OPPORTUNITY_REQUEST,
    Intent.BLUEPRINT_REQUEST,
    Intent.GOVERNANCE_REQUEST,
})


def intent_threshold(process_count: int, base: float = 0.6) -> float:
    if process_count > 5:
        return round(base + 0.1, 2)
    if process_count > 3:
        return round(base + 0.05, 2)
    return base


class ConfidenceGate:

    def __init__(self, settings: OrchestrationSettings):
        self.settings = settings

    def check(self, decision: Decision, process_count: int) -> str | None:
        """Return the clarification reason, or None when the decision may execute."""
        if decision.intent == Intent.CLARIFICATION_NEEDED:
            return LOW_INTENT_CONFIDENCE

        if decision.intent in ACTIONABLE_INTENTS:
            threshold = intent_threshold(process_count, self.settings.intent_confidence_min)
            if decision.intent_confidence is not None and decision.intent_confidence < threshold:
                return LOW_INTENT_CONFIDENCE
            if (decision.extraction_confidence is not None
                    and decision.extraction_confidence < self.settings.extraction_confidence_min):
                return LOW_EXTRACTION_CONFIDENCE

        if decision.intent == Intent.REFERENCE_EXISTING_ARTIFACT and not decision.target_ids.any():
            return AMBIGUOUS_REFERENCE

        if decision.intent == Intent.PROCESS_DESCRIPTION:
            if not (decision.data.process_name or "").strip() or len(decision.data.steps) < 2:
                return LOW_EXTRACTION_CONFIDENCE
        return None


class Clarifier:
    """Asks the model for exactly one follow-up question."""

    def __init__(self, gateway, prompt_registry):
        self.gateway = gateway
        self.prompt_registry = prompt_registry

    def ask(self, user_message: str, reason: str, session_context: str,
            workspace_id: str | None = None) -> str:
        system, user = self.prompt_registry.render_pair(
            "clarification",
            reason=reason,
            session_context=session_context or "No prior context",
            user_message=user_message,
        )
        try:
            text = self.gateway.complete(
                system, [{"role": "user", "content": user}],
                temperature=0.3, max_tokens=150,
                purpose="clarification", workspace_id=workspace_id,
            )
        except LLMError as e:
            logger.warning("Clarification question failed, using fallback: %s", e)
            return FALLBACK_QUESTION

        for line in (text or "").splitlines():
            if line.strip():
                return line.strip()
        return FALLBACK_QUESTION
