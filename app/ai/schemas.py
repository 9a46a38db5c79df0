"""
Process Mapping Studio
Structured-output schemas — pydantic models for every JSON payload the LLM
returns, plus the parser that turns raw completion text into them.

Nothing downstream of the gateway touches raw JSON: a payload either
validates into one of these models or raises ``LLMResponseError``.
"""

import json
import logging
import re
from enum import Enum
from typing import Literal, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from app.core.exceptions import LLMResponseError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class Intent(str, Enum):
    """What the user is trying to do with a message."""
    PROCESS_DESCRIPTION = "process_description"
    REFINE_PROCESS = "refine_process"
    REFERENCE_EXISTING_ARTIFACT = "reference_existing_artifact"
    OPPORTUNITY_REQUEST = "opportunity_request"
    BLUEPRINT_REQUEST = "blueprint_request"
    GOVERNANCE_REQUEST = "governance_request"
    SESSION_SUMMARY_REQUEST = "session_summary_request"
    CLARIFICATION_NEEDED = "clarification_needed"
    GENERAL_QUESTION = "general_question"
    UNKNOWN = "unknown"


class Action(str, Enum):
    """Domain actions the dispatcher knows how to run."""
    EXTRACT_PROCESS = "extract_process"
    REFINE_PROCESS = "refine_process"
    SCAN_OPPORTUNITIES = "scan_opportunities"
    GENERATE_BLUEPRINT = "generate_blueprint"
    CREATE_USE_CASE = "create_use_case"
    GENERATE_SUMMARY = "generate_summary"
    RESPOND_ONLY = "respond_only"


def _as_str_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [str(v) for v in value if v is not None and str(v).strip()]


# ── Intent classification ────────────────────────────────────────────────────


class StepSpec(BaseModel):
    """One step as extracted from the conversation."""

    title: str = Field(min_length=1)
    description: str | None = None
    owner: str | None = None
    frequency: str | None = None
    duration: str | None = None
    inputs: list[str] = Field(default_factory=list)
    outputs: list[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("step title is blank")
        return v

    @field_validator("inputs", "outputs", mode="before")
    @classmethod
    def _coerce_list(cls, v):
        return _as_str_list(v)


class TargetIds(BaseModel):
    process_id: str | None = None
    opportunity_id: str | None = None
    blueprint_id: str | None = None
    ai_use_case_id: str | None = None

    def any(self) -> bool:
        return any((self.process_id, self.opportunity_id, self.blueprint_id, self.ai_use_case_id))


class DecisionData(BaseModel):
    process_name: str | None = None
    process_description: str | None = None
    process_id: str | None = None
    steps: list[StepSpec] = Field(default_factory=list)
    use_case_title: str | None = None
    use_case_description: str | None = None

    @field_validator("steps", mode="before")
    @classmethod
    def _null_steps(cls, v):
        return [] if v is None else v


class Decision(BaseModel):
    """The classifier's verdict for one message."""

    model_config = ConfigDict(populate_by_name=True)

    intent: Intent
    actions: list[Action]
    explanation: str = Field(min_length=1)
    intent_confidence: float | None = Field(
        default=None, ge=0.0, le=1.0,
        validation_alias=AliasChoices("intent_confidence", "confidence"),
    )
    extraction_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    target_ids: TargetIds = Field(default_factory=TargetIds)
    data: DecisionData = Field(default_factory=DecisionData)

    @field_validator("intent", mode="before")
    @classmethod
    def _unknown_intent(cls, v):
        if isinstance(v, str) and v not in Intent._value2member_map_:
            logger.warning("Classifier returned unknown intent %r", v)
            return Intent.UNKNOWN
        return v

    @field_validator("actions", mode="before")
    @classmethod
    def _drop_unknown_actions(cls, v):
        if not isinstance(v, list):
            raise ValueError("actions must be a list")
        known = []
        for item in v:
            if item in Action._value2member_map_:
                known.append(item)
            else:
                logger.warning("Dropping unknown action %r from decision", item)
        return known

    @field_validator("target_ids", "data", mode="before")
    @classmethod
    def _null_objects(cls, v):
        return {} if v is None else v

    @property
    def target_process_id(self) -> str | None:
        return self.target_ids.process_id or self.data.process_id


# ── Opportunity analysis ─────────────────────────────────────────────────────


Level = Literal["low", "medium", "high"]


class OpportunityAnalysis(BaseModel):
    """Verdict for a single step. ``impact_score == 0`` means no opportunity."""

    title: str = Field(min_length=1)
    opportunity_type: str = "workflow_automation"
    impact_level: Level
    effort_level: Level
    impact_score: int = Field(ge=0, le=100)
    feasibility_score: int = Field(ge=0, le=100)
    rationale: str = ""

    @field_validator("impact_level", "effort_level", "opportunity_type", mode="before")
    @classmethod
    def _lower(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("impact_score", "feasibility_score", mode="before")
    @classmethod
    def _round_score(cls, v):
        if isinstance(v, float):
            return int(round(v))
        return v

    @property
    def is_opportunity(self) -> bool:
        return self.impact_score > 0


# ── Blueprint ────────────────────────────────────────────────────────────────


class BlueprintOpportunity(BaseModel):
    title: str
    summary: str = ""
    id: str | None = None
    selected_tools: list[str] = Field(default_factory=list)

    @field_validator("selected_tools", mode="before")
    @classmethod
    def _coerce_tools(cls, v):
        return _as_str_list(v)


class BlueprintPhase(BaseModel):
    name: str = Field(min_length=1)
    duration: str = ""
    objectives: list[str] = Field(default_factory=list)
    activities: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    deliverables: list[str] = Field(default_factory=list)

    @field_validator(
        "objectives", "activities", "tools", "dependencies", "deliverables", mode="before",
    )
    @classmethod
    def _coerce_list(cls, v):
        return _as_str_list(v)


class BlueprintRisk(BaseModel):
    name: str
    mitigation: str = ""


class BlueprintKpi(BaseModel):
    name: str
    baseline: str = ""
    target: str = ""

    @field_validator("baseline", "target", mode="before")
    @classmethod
    def _stringify(cls, v):
        return "" if v is None else str(v)


class BlueprintContent(BaseModel):
    """Every top-level key is required; list sections may be empty except phases."""

    title: str = Field(min_length=1)
    executive_summary: str = Field(min_length=1)
    current_state: str
    target_state: str
    opportunities: list[BlueprintOpportunity]
    phases: list[BlueprintPhase] = Field(min_length=1)
    risks: list[BlueprintRisk]
    kpis: list[BlueprintKpi]


# ── Governance ───────────────────────────────────────────────────────────────


class RiskItem(BaseModel):
    title: str
    description: str = ""
    mitigation: str = ""


class RiskAssessmentDraft(BaseModel):
    risk_level: Literal["low", "medium", "high", "critical"]
    impact_areas: list[str] = Field(default_factory=list)
    data_sensitivity: str | None = None
    regulatory_relevance: list[str] = Field(default_factory=list)
    summary_text: str = ""
    risks: list[RiskItem] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    residual_risk_text: str | None = None

    @field_validator("risk_level", mode="before")
    @classmethod
    def _lower(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("impact_areas", "regulatory_relevance", "assumptions", mode="before")
    @classmethod
    def _coerce_list(cls, v):
        return _as_str_list(v)


# ── Session ──────────────────────────────────────────────────────────────────


class SessionTitle(BaseModel):
    title: str = Field(min_length=1, max_length=80)

    @field_validator("title", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


# ── Parsing ──────────────────────────────────────────────────────────────────


def _load_json_object(content: str) -> dict:
    cleaned = (content or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if not match:
            raise LLMResponseError("Completion is not JSON", raw=content)
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise LLMResponseError(f"Completion is not valid JSON: {e}", raw=content) from e
    if not isinstance(data, dict):
        raise LLMResponseError("Completion JSON is not an object", raw=content)
    return data


def parse_completion(content: str, model: type[M]) -> M:
    """Parse completion text into *model*; raise ``LLMResponseError`` on any mismatch."""
    data = _load_json_object(content)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise LLMResponseError(
            f"{model.__name__} failed validation: {e.error_count()} error(s)", raw=content,
        ) from e
