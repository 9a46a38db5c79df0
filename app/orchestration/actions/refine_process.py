"""
Process Mapping Studio
Process refinement — reconciles incoming steps against an existing process.

Matched steps keep their id (and so every opportunity pointing at them),
unmatched existing steps are removed with their opportunities detached, and
the link chain is rebuilt from the new order.
"""

import logging

from app.ai.schemas import StepSpec
from app.models.process import STEP_ROW_Y, STEP_SPACING_X, Process, ProcessStep
from app.orchestration.actions.extract_process import process_payload, step_payload
from app.orchestration.resolver import ProcessResolver
from app.orchestration.similarity import Scorer, best_match, similarity
from app.orchestration.store import ArtifactStore
from app.orchestration.types import OrchestrationSettings, TurnState

logger = logging.getLogger(__name__)

_STEP_FIELDS = ("description", "owner", "frequency", "duration")


class ProcessRefiner:

    def __init__(self, store: ArtifactStore, resolver: ProcessResolver,
                 settings: OrchestrationSettings, scorer: Scorer = similarity):
        self.store = store
        self.resolver = resolver
        self.settings = settings
        self.scorer = scorer

    def run(self, turn: TurnState):
        data = turn.decision.data
        process = self.resolver.resolve(
            turn.workspace_id,
            process_id=turn.decision.target_process_id,
            name=data.process_name,
            session_process_ids=turn.metadata.get("process_ids", []),
        )

        if data.process_name and data.process_name.strip():
            process.name = data.process_name.strip()
        if data.process_description:
            process.description = data.process_description

        outcome = {"process_id": process.id, "created_step_ids": [],
                   "updated_step_ids": [], "deleted_step_ids": []}
        created: list[ProcessStep] = []
        if data.steps:
            created = self.reconcile_steps(process, data.steps, outcome)
        self.store.commit()

        logger.info(
            "Refined process %s: %d created, %d updated, %d deleted steps",
            process.id, len(outcome["created_step_ids"]),
            len(outcome["updated_step_ids"]), len(outcome["deleted_step_ids"]),
            extra={"workspace_id": turn.workspace_id, "session_id": turn.session_id},
        )

        turn.add_ids("process_ids", process.id)
        turn.touched_process_ids.append(process.id)
        turn.artifacts.updated_processes.append(process_payload(process))
        turn.artifacts.created_steps.extend(step_payload(s) for s in created)
        turn.artifacts.refinements.append(outcome)
        turn.ui = {"scroll_to": "processes", "highlight_id": process.id}

    def reconcile_steps(self, process: Process, incoming: list[StepSpec],
                        outcome: dict) -> list[ProcessStep]:
        """Greedy match in incoming order; each existing step is claimed at most once."""
        unclaimed = list(process.steps)
        ordered: list[ProcessStep] = []
        created: list[ProcessStep] = []

        for spec in incoming:
            match = best_match(
                spec.title, unclaimed, key=lambda s: s.title,
                threshold=self.settings.step_match_threshold,
                scorer=self.scorer,
            )
            if match is not None:
                step = match[0]
                unclaimed.remove(step)
                self._apply(step, spec)
                outcome["updated_step_ids"].append(step.id)
            else:
                step = ProcessStep(process_id=process.id, title=spec.title)
                self._apply(step, spec)
                created.append(step)
            ordered.append(step)

        for i, step in enumerate(ordered):
            step.position_x = i * STEP_SPACING_X
            step.position_y = STEP_ROW_Y

        # Links reference steps, so they go before any step is removed
        process.links = []
        self.store.flush()

        for step in unclaimed:
            outcome["deleted_step_ids"].append(step.id)
            for opportunity in list(step.opportunities):
                opportunity.step = None
        process.steps = ordered
        self.store.flush()

        outcome["created_step_ids"].extend(s.id for s in created)
        self.store.replace_links(process, ordered)
        return created

    @staticmethod
    def _apply(step: ProcessStep, spec: StepSpec):
        step.title = spec.title
        for name in _STEP_FIELDS:
            value = getattr(spec, name)
            if value is not None:
                setattr(step, name, value)
        if spec.inputs or step.inputs is None:
            step.inputs = list(spec.inputs)
        if spec.outputs or step.outputs is None:
            step.outputs = list(spec.outputs)
