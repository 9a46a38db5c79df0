"""
Process Mapping Studio
Governance flow — registers an AI use case, then drafts its risk assessment.

The two writes are independent: the use case is committed first, and a failed
risk draft is rolled back on its own without touching it.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from app.ai.schemas import RiskAssessmentDraft, parse_completion
from app.core.exceptions import LLMError, ValidationError
from app.models.governance import AiRiskAssessment, AiUseCase
from app.orchestration.store import ArtifactStore
from app.orchestration.types import OrchestrationSettings, TurnState

logger = logging.getLogger(__name__)


class GovernanceFlow:

    def __init__(self, store: ArtifactStore, gateway, prompt_registry,
                 settings: OrchestrationSettings):
        self.store = store
        self.gateway = gateway
        self.prompt_registry = prompt_registry
        self.settings = settings

    def run(self, turn: TurnState):
        data = turn.decision.data
        title = (data.use_case_title or "").strip()
        description = (data.use_case_description or "").strip()
        if not title or not description:
            raise ValidationError(
                "Use case title and description are required",
                details={"title": bool(title), "description": bool(description)},
            )

        use_case = self.store.add(AiUseCase(
            workspace_id=turn.workspace_id,
            project_id=turn.project_id,
            title=title,
            description=description,
            status="draft",
            source="assistant_session",
            linked_process_ids=list(turn.metadata.get("process_ids", [])),
            linked_opportunity_ids=list(turn.metadata.get("opportunity_ids", [])),
        ))
        self.store.commit()
        logger.info("Registered AI use case %s", use_case.id,
                    extra={"workspace_id": turn.workspace_id, "session_id": turn.session_id})

        turn.add_ids("ai_use_case_ids", use_case.id)
        payload = {"id": use_case.id, "title": use_case.title, "risk_assessment_id": None}
        turn.artifacts.created_use_cases.append(payload)

        if not self.settings.auto_risk_draft:
            return
        try:
            assessment = self.draft_risk_assessment(use_case)
        except (LLMError, SQLAlchemyError) as e:
            self.store.rollback()
            logger.warning("Risk draft for use case %s failed: %s", use_case.id, e,
                           extra={"workspace_id": turn.workspace_id})
            return
        if assessment is not None:
            payload["risk_assessment_id"] = assessment.id

    def draft_risk_assessment(self, use_case: AiUseCase) -> AiRiskAssessment | None:
        """Draft once; a use case that already has an assessment is left alone."""
        if use_case.risk_assessment is not None:
            return None

        system, user = self.prompt_registry.render_pair(
            "risk_assessment", title=use_case.title, description=use_case.description,
        )
        raw = self.gateway.complete(
            system, [{"role": "user", "content": user}],
            json_mode=True, temperature=0.3, max_tokens=2000,
            purpose="risk_assessment", workspace_id=use_case.workspace_id,
        )
        draft = parse_completion(raw, RiskAssessmentDraft)

        assessment = self.store.add(AiRiskAssessment(
            ai_use_case_id=use_case.id,
            risk_level=draft.risk_level,
            impact_areas=draft.impact_areas,
            data_sensitivity=draft.data_sensitivity,
            regulatory_relevance=draft.regulatory_relevance,
            summary_text=draft.summary_text,
            risks_json=[r.model_dump() for r in draft.risks],
            assumptions_json=draft.assumptions,
            residual_risk_text=draft.residual_risk_text,
            drafted_by_ai=True,
            last_drafted_at=datetime.now(timezone.utc),
        ))
        self.store.commit()
        return assessment
