"""
Process Mapping Studio
Opportunity Scanner — scores each step of a process as an automation candidate.

Pipeline:
    1. Pick the target process (explicit id → extracted or refined this turn → last in session)
    2. Compute heuristic hints per step (advisory only)
    3. One LLM call per step on a bounded thread pool; workers never touch the DB
    4. Upsert opportunities by (process_id, step_id) on the calling thread

A step whose analysis fails is logged and skipped. ``impact_score == 0`` is
the analyzer saying "no opportunity" and is neither persisted nor counted.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor

from app.ai.schemas import OpportunityAnalysis, parse_completion
from app.core.exceptions import LLMError, NotFoundError, ValidationError
from app.models.opportunity import Opportunity
from app.orchestration.store import ArtifactStore
from app.orchestration.types import OrchestrationSettings, TurnState

logger = logging.getLogger(__name__)

NO_HINTS = "No specific automation hints detected."

_KEYWORD_HINTS = (
    (re.compile(r"\b(manual|manually|copy|paste|enter|type|download|upload)\b"),
     "- Manual data handling detected - strong automation potential"),
    (re.compile(r"\b(email|pdf|invoice|form|spreadsheet|excel|csv)\b"),
     "- Structured documents involved - document processing opportunity"),
    (re.compile(r"\b(review|check|verify|validate|approve)\b"),
     "- Review/validation step - AI-assisted decision support possible"),
    (re.compile(r"\b(extract|parse|read|scan)\b"),
     "- Data extraction task - AI extraction can help"),
    (re.compile(r"\b(repetitive|repeat|same|every)\b"),
     "- Repetitive task - automation candidate"),
)


def heuristic_hints(step: dict) -> list[str]:
    """Keyword hints for one step; the analyzer may ignore them."""
    hints = []
    frequency = (step.get("frequency") or "").lower()
    duration = (step.get("duration") or "").lower()
    if "daily" in frequency or "hourly" in frequency:
        hints.append("- High frequency task (daily/hourly) - good automation candidate")
    if "hour" in duration or "minute" in duration:
        hints.append("- Significant time investment - automation could save considerable time")

    text = " ".join(
        part for part in (step.get("title"), step.get("description")) if part
    ).lower()
    for pattern, hint in _KEYWORD_HINTS:
        if pattern.search(text):
            hints.append(hint)
    return hints


class OpportunityScanner:

    def __init__(self, store: ArtifactStore, gateway, prompt_registry,
                 settings: OrchestrationSettings):
        self.store = store
        self.gateway = gateway
        self.prompt_registry = prompt_registry
        self.settings = settings

    def run(self, turn: TurnState):
        process_id = self.target_process_id(turn)
        process = self.store.get_process(turn.workspace_id, process_id)
        if process is None:
            raise NotFoundError("Process", process_id, turn.workspace_id)

        opportunities, failed = self.scan(process, workspace_id=turn.workspace_id)
        self.store.commit()

        turn.add_ids("opportunity_ids", *[o.id for o in opportunities])
        turn.artifacts.created_opportunities.extend(
            {"id": o.id, "title": o.title, "process_id": o.process_id,
             "step_id": o.step_id, "impact_score": o.impact_score}
            for o in opportunities
        )
        if failed:
            logger.warning("Opportunity scan of %s skipped %d step(s)", process.id, failed,
                           extra={"workspace_id": turn.workspace_id})

    @staticmethod
    def target_process_id(turn: TurnState) -> str:
        explicit = turn.decision.target_process_id
        if explicit:
            return explicit
        if turn.touched_process_ids:
            return turn.touched_process_ids[-1]
        session_ids = turn.context.current_metadata.get("process_ids") or []
        if session_ids:
            return session_ids[-1]
        raise ValidationError("No process available to scan for opportunities")

    def scan(self, process, *, workspace_id: str) -> tuple[list[Opportunity], int]:
        """Analyze every step of *process*; return ``(opportunities, failed_count)``."""
        steps = list(process.steps)
        if not steps:
            raise ValidationError("Process has no steps to scan", details={"process_id": process.id})

        # Plain dicts cross the thread boundary, ORM rows stay on this thread
        payloads = [
            {
                "id": s.id,
                "title": s.title,
                "description": s.description,
                "owner": s.owner,
                "frequency": s.frequency,
                "duration": s.duration,
                "inputs": list(s.inputs or []),
                "outputs": list(s.outputs or []),
            }
            for s in steps
        ]
        workers = min(self.settings.scan_workers, len(payloads))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="opportunity-scan") as pool:
            futures = [pool.submit(self.analyze_step, p, workspace_id) for p in payloads]

        failed = 0
        results: list[Opportunity] = []
        for step, payload, future in zip(steps, payloads, futures):
            try:
                analysis = future.result()
            except LLMError as e:
                failed += 1
                logger.warning("Step analysis failed for %s: %s", payload["id"], e)
                continue
            if not analysis.is_opportunity:
                continue
            results.append(self._upsert(process.id, step.id, analysis))

        self.store.flush()
        return results, failed

    def analyze_step(self, step: dict, workspace_id: str | None = None) -> OpportunityAnalysis:
        hints = heuristic_hints(step)
        system, user = self.prompt_registry.render_pair(
            "opportunity_analysis",
            title=step["title"],
            description=step.get("description") or "Not specified",
            owner=step.get("owner") or "Not specified",
            frequency=step.get("frequency") or "Not specified",
            duration=step.get("duration") or "Not specified",
            inputs=", ".join(step.get("inputs") or []) or "None",
            outputs=", ".join(step.get("outputs") or []) or "None",
            hints="\n".join(hints) if hints else NO_HINTS,
        )
        raw = self.gateway.complete(
            system, [{"role": "user", "content": user}],
            json_mode=True, temperature=0.3, max_tokens=1000,
            purpose="opportunity_analysis", workspace_id=workspace_id,
        )
        return parse_completion(raw, OpportunityAnalysis)

    def _upsert(self, process_id: str, step_id: str, analysis: OpportunityAnalysis) -> Opportunity:
        opportunity = self.store.find_step_opportunity(process_id, step_id)
        if opportunity is None:
            opportunity = self.store.add(Opportunity(process_id=process_id, step_id=step_id))
        opportunity.title = analysis.title
        opportunity.description = analysis.rationale
        opportunity.opportunity_type = analysis.opportunity_type
        opportunity.impact_level = analysis.impact_level
        opportunity.effort_level = analysis.effort_level
        opportunity.impact_score = analysis.impact_score
        opportunity.feasibility_score = analysis.feasibility_score
        opportunity.rationale = analysis.rationale
        return opportunity
