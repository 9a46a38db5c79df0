"""
Process Mapping Studio
Next-step suggestion — a pure function of the session's artifact counters.
"""

from app.orchestration.types import NextStepSuggestion

DESCRIBE_PROCESS = NextStepSuggestion(
    "describe_process", "Describe one messy process and I'll map it for you.",
)
EXTRACT_STEPS = NextStepSuggestion(
    "extract_steps", "Want me to extract the steps from this process?",
)
SCAN_OPPORTUNITIES = NextStepSuggestion(
    "scan_opportunities", "We can scan your mapped processes for AI opportunities next.",
)
GENERATE_BLUEPRINT = NextStepSuggestion(
    "generate_blueprint",
    "Based on these opportunities, I can generate a blueprint implementation plan.",
)
CREATE_GOVERNANCE = NextStepSuggestion(
    "create_governance",
    "We can register this as an AI use case and start governance tracking.",
)


def compute_next_step(
    process_count: int,
    total_step_count: int | None,
    opportunity_count: int,
    blueprint_count: int,
    ai_use_case_count: int,
) -> NextStepSuggestion | None:
    """Highest-priority nudge for the session, or None once everything exists.

    ``total_step_count`` may be None when the caller did not count steps; that
    is treated like zero.
    """
    if process_count == 0:
        return DESCRIBE_PROCESS
    if not total_step_count:
        return EXTRACT_STEPS
    if opportunity_count == 0:
        return SCAN_OPPORTUNITIES
    if blueprint_count == 0:
        return GENERATE_BLUEPRINT
    if ai_use_case_count == 0:
        return CREATE_GOVERNANCE
    return None
