"""
Process Mapping Studio
Session orchestration engine.

Turns one user message into classified intent, gated domain actions and an
updated session metadata document. Entry point: ``Orchestrator.orchestrate``.
"""

from app.orchestration.router import Orchestrator
from app.orchestration.types import (
    OrchestrationContext,
    OrchestrationResult,
    OrchestrationSettings,
)

__all__ = [
    "Orchestrator",
    "OrchestrationContext",
    "OrchestrationResult",
    "OrchestrationSettings",
]
