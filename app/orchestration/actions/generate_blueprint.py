"""
Process Mapping Studio
Blueprint Generator — one structured call over a compact brief of the
session's processes, opportunities and selected tools.

Every generation writes a new immutable version for the project; existing
blueprints are never edited.
"""

import logging

from app.ai.schemas import BlueprintContent, parse_completion
from app.core.exceptions import ValidationError
from app.models.blueprint import Blueprint
from app.orchestration.blueprint_renderer import render_markdown
from app.orchestration.store import ArtifactStore
from app.orchestration.types import TurnState

logger = logging.getLogger(__name__)

_RATIONALE_CHARS = 200
_TOOL_DESCRIPTION_CHARS = 100


def build_brief(project, processes, opportunities) -> str:
    """Plain-text project brief handed to the model."""
    lines = ["PROJECT OVERVIEW:", f"- Name: {project.name}"]
    if project.description:
        lines.append(f"- Description: {project.description}")
    lines += ["", f"PROCESSES ({len(processes)}):"]

    opp_counts: dict[str, int] = {}
    for opp in opportunities:
        opp_counts[opp.process_id] = opp_counts.get(opp.process_id, 0) + 1

    for process in processes:
        lines += ["", f"{process.name}:"]
        if process.description:
            lines.append(f"  Description: {process.description}")
        lines.append(f"  Steps ({len(process.steps)}):")
        for i, step in enumerate(process.steps, 1):
            owner = f" [{step.owner}]" if step.owner else ""
            lines.append(f"    {i}. {step.title}{owner}")
        lines.append(f"  Opportunities: {opp_counts.get(process.id, 0)}")

    names = {p.id: p.name for p in processes}
    lines += ["", "OPPORTUNITIES:"]
    if not opportunities:
        lines.append("No opportunities identified yet.")
    for n, opp in enumerate(opportunities, 1):
        lines += [
            "",
            f"{n}. {opp.title} ({names.get(opp.process_id, 'process')}) [id: {opp.id}]",
            f"   Impact: {opp.impact_level} ({opp.impact_score}/100)",
            f"   Effort: {opp.effort_level}",
        ]
        if opp.step is not None:
            lines.append(f"   Step: {opp.step.title}")
        if opp.rationale:
            lines.append(f"   Rationale: {opp.rationale[:_RATIONALE_CHARS]}")
        tools = opp.selected_tools
        if tools:
            lines.append("   Selected Tools:")
            for tool in tools:
                description = (tool.description or "")[:_TOOL_DESCRIPTION_CHARS]
                lines.append(f"   - {tool.name} ({tool.category}): {description}")
        else:
            lines.append("   Selected Tools: none")
    return "\n".join(lines)


class BlueprintGenerator:

    def __init__(self, store: ArtifactStore, gateway, prompt_registry):
        self.store = store
        self.gateway = gateway
        self.prompt_registry = prompt_registry

    def run(self, turn: TurnState):
        processes = self.store.processes_by_ids(
            turn.workspace_id, turn.metadata.get("process_ids", []),
        )
        mapped = [p for p in processes if p.steps]
        if not mapped:
            raise ValidationError(
                "A blueprint needs at least one process with mapped steps",
                details={"process_count": len(processes)},
            )

        project = (
            self.store.get_project(turn.workspace_id, turn.project_id)
            or self.store.get_project(turn.workspace_id, mapped[0].project_id)
        )
        opportunities = self.store.opportunities_for_processes([p.id for p in mapped])

        system, user = self.prompt_registry.render_pair(
            "blueprint_generation", brief=build_brief(project, mapped, opportunities),
        )
        raw = self.gateway.complete(
            system, [{"role": "user", "content": user}],
            json_mode=True, temperature=0.7, max_tokens=4000,
            purpose="blueprint_generation", workspace_id=turn.workspace_id,
        )
        content = parse_completion(raw, BlueprintContent)

        blueprint = self.store.add(Blueprint(
            workspace_id=turn.workspace_id,
            project_id=project.id,
            title=content.title,
            content_json=content.model_dump(),
            rendered_markdown=render_markdown(content),
            version=self.store.next_blueprint_version(project.id),
            metadata_json={
                "process_count": len(mapped),
                "opportunity_count": len(opportunities),
                "selected_tool_count": sum(len(o.selected_tools) for o in opportunities),
            },
        ))
        self.store.commit()

        logger.info("Generated blueprint %s v%d", blueprint.id, blueprint.version,
                    extra={"workspace_id": turn.workspace_id, "session_id": turn.session_id})

        turn.set_project(project.id)
        turn.add_ids("blueprint_ids", blueprint.id)
        turn.artifacts.created_blueprints.append(
            {"id": blueprint.id, "title": blueprint.title, "version": blueprint.version}
        )
        turn.ui = {"scroll_to": "blueprints", "highlight_id": blueprint.id}
