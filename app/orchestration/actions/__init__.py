"""Domain action handlers. Each exposes ``run(turn)`` and raises on failure."""

from app.orchestration.actions.extract_process import ProcessExtractor
from app.orchestration.actions.generate_blueprint import BlueprintGenerator
from app.orchestration.actions.governance import GovernanceFlow
from app.orchestration.actions.opportunity_scan import OpportunityScanner
from app.orchestration.actions.refine_process import ProcessRefiner
from app.orchestration.actions.session_summary import SessionSummarizer

__all__ = [
    "ProcessExtractor",
    "ProcessRefiner",
    "OpportunityScanner",
    "BlueprintGenerator",
    "GovernanceFlow",
    "SessionSummarizer",
]
