"""
Process Mapping Studio
Process extraction — turns the classifier's structured steps into a new
Process with its steps laid out left to right and chained by links.
"""

import logging

from app.core.exceptions import ValidationError
from app.models.process import STEP_ROW_Y, STEP_SPACING_X, Process, ProcessStep
from app.orchestration.store import ArtifactStore
from app.orchestration.types import TurnState

logger = logging.getLogger(__name__)

MIN_STEPS = 2


def step_payload(step: ProcessStep) -> dict:
    return {"id": step.id, "title": step.title, "process_id": step.process_id}


def process_payload(process: Process) -> dict:
    d = process.to_dict(include_children=True)
    d["link_count"] = len(process.links)
    return d


class ProcessExtractor:
    """Creates one process (plus steps and links) in a single transaction."""

    def __init__(self, store: ArtifactStore):
        self.store = store

    def run(self, turn: TurnState):
        data = turn.decision.data
        name = (data.process_name or "").strip()
        if not name:
            raise ValidationError("Process name is required", details={"field": "process_name"})
        if len(data.steps) < MIN_STEPS:
            raise ValidationError(
                f"Process must have at least {MIN_STEPS} steps",
                details={"steps": len(data.steps)},
            )

        project = self.store.ensure_project(turn.workspace_id, turn.project_id)
        process = self.store.add(Process(
            workspace_id=turn.workspace_id,
            project_id=project.id,
            name=name,
            description=data.process_description,
        ))
        self.store.flush()

        steps = []
        for i, spec in enumerate(data.steps):
            steps.append(ProcessStep(
                process_id=process.id,
                title=spec.title,
                description=spec.description,
                owner=spec.owner,
                frequency=spec.frequency,
                duration=spec.duration,
                inputs=list(spec.inputs),
                outputs=list(spec.outputs),
                position_x=i * STEP_SPACING_X,
                position_y=STEP_ROW_Y,
            ))
        process.steps = steps
        self.store.flush()
        self.store.replace_links(process, steps)
        self.store.commit()

        logger.info("Extracted process %s with %d steps", process.id, len(steps),
                    extra={"workspace_id": turn.workspace_id, "session_id": turn.session_id})

        turn.set_project(project.id)
        turn.add_ids("process_ids", process.id)
        turn.touched_process_ids.append(process.id)
        turn.artifacts.created_processes.append(process_payload(process))
        turn.artifacts.created_steps.extend(step_payload(s) for s in steps)
        turn.ui = {"scroll_to": "processes", "highlight_id": process.id}
