"""
Process Mapping Studio
Orchestration types — turn input, turn output and engine settings.
"""

from dataclasses import dataclass, field

from app.ai.schemas import Decision
from app.models.session import METADATA_LIST_KEYS, empty_metadata


@dataclass(frozen=True)
class OrchestrationSettings:
    """Snapshot of the engine tunables taken from ``app.config``."""

    process_match_threshold: float = 0.6
    step_match_threshold: float = 0.7
    process_match_candidates: int = 10
    intent_confidence_min: float = 0.6
    extraction_confidence_min: float = 0.7
    history_window: int = 5
    scan_workers: int = 4
    metadata_merge_retries: int = 3
    auto_risk_draft: bool = True

    @classmethod
    def from_config(cls, config) -> "OrchestrationSettings":
        return cls(
            process_match_threshold=float(config.get("PROCESS_MATCH_THRESHOLD", 0.6)),
            step_match_threshold=float(config.get("STEP_MATCH_THRESHOLD", 0.7)),
            process_match_candidates=int(config.get("PROCESS_MATCH_CANDIDATES", 10)),
            intent_confidence_min=float(config.get("INTENT_CONFIDENCE_MIN", 0.6)),
            extraction_confidence_min=float(config.get("EXTRACTION_CONFIDENCE_MIN", 0.7)),
            history_window=int(config.get("HISTORY_WINDOW", 5)),
            scan_workers=max(1, int(config.get("OPPORTUNITY_SCAN_WORKERS", 4))),
            metadata_merge_retries=max(1, int(config.get("METADATA_MERGE_RETRIES", 3))),
            auto_risk_draft=bool(config.get("GOVERNANCE_AUTO_RISK_DRAFT", True)),
        )


@dataclass
class OrchestrationContext:
    """Everything the engine knows about the session before the turn starts."""

    workspace_id: str
    session_id: str
    current_metadata: dict = field(default_factory=empty_metadata)
    conversation_history: list[dict] = field(default_factory=list)
    session_title: str | None = None

    def __post_init__(self):
        doc = empty_metadata()
        doc.update(self.current_metadata or {})
        for key in METADATA_LIST_KEYS:
            doc[key] = list(doc.get(key) or [])
        self.current_metadata = doc


@dataclass
class Clarification:
    message: str
    reason: str

    def to_dict(self) -> dict:
        return {"message": self.message, "reason": self.reason}


@dataclass(frozen=True)
class NextStepSuggestion:
    action_type: str
    label: str

    def to_dict(self) -> dict:
        return {"action_type": self.action_type, "label": self.label}


@dataclass
class Artifacts:
    """What changed during one turn. Untouched lists are omitted from ``to_dict``."""

    created_processes: list[dict] = field(default_factory=list)
    updated_processes: list[dict] = field(default_factory=list)
    created_steps: list[dict] = field(default_factory=list)
    refinements: list[dict] = field(default_factory=list)
    created_opportunities: list[dict] = field(default_factory=list)
    created_blueprints: list[dict] = field(default_factory=list)
    created_use_cases: list[dict] = field(default_factory=list)
    updated_summary: str | None = None

    def to_dict(self) -> dict:
        d = {
            key: value
            for key, value in self.__dict__.items()
            if key != "updated_summary" and value
        }
        if self.updated_summary is not None:
            d["updated_summary"] = self.updated_summary
        return d


@dataclass
class ActionOutcome:
    action: str
    status: str  # success | failed | halted
    error: str | None = None

    def to_dict(self) -> dict:
        d = {"action": self.action, "status": self.status}
        if self.error:
            d["error"] = self.error
        return d


@dataclass
class OrchestrationResult:
    success: bool
    assistant_message: str
    updated_metadata: dict
    artifacts: Artifacts = field(default_factory=Artifacts)
    intent: str | None = None
    actions: list[ActionOutcome] = field(default_factory=list)
    clarification: Clarification | None = None
    next_step_suggestion: NextStepSuggestion | None = None
    ui: dict | None = None
    error: str | None = None

    @property
    def executed(self) -> bool:
        return self.success and self.clarification is None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "assistant_message": self.assistant_message,
            "intent": self.intent,
            "artifacts": self.artifacts.to_dict(),
            "actions": [a.to_dict() for a in self.actions],
            "updated_metadata": self.updated_metadata,
            "clarification": self.clarification.to_dict() if self.clarification else None,
            "next_step_suggestion": (
                self.next_step_suggestion.to_dict() if self.next_step_suggestion else None
            ),
            "ui": self.ui,
            "error": self.error,
        }


class TurnState:
    """
    Mutable state shared by the handlers of one executed turn.

    ``metadata`` starts as a copy of the session metadata and only ever grows:
    handlers append ids through :meth:`add_ids`, which keeps each list
    de-duplicated and in first-seen order.
    """

    def __init__(self, context: OrchestrationContext, decision: Decision):
        self.context = context
        self.decision = decision
        self.metadata = {
            key: (list(value) if isinstance(value, list) else value)
            for key, value in context.current_metadata.items()
        }
        self.artifacts = Artifacts()
        self.touched_process_ids: list[str] = []
        self.ui: dict | None = None

    @property
    def workspace_id(self) -> str:
        return self.context.workspace_id

    @property
    def session_id(self) -> str:
        return self.context.session_id

    @property
    def project_id(self) -> str | None:
        return self.metadata.get("project_id")

    def set_project(self, project_id: str):
        if not self.metadata.get("project_id"):
            self.metadata["project_id"] = project_id

    def add_ids(self, key: str, *ids: str):
        bucket = self.metadata.setdefault(key, [])
        for item in ids:
            if item and item not in bucket:
                bucket.append(item)
