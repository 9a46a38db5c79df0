"""Session overview: structured artifact lists plus a short markdown summary."""

from __future__ import annotations

from app.orchestration.store import ArtifactStore

EMPTY_OVERVIEW = (
    "This session doesn't have any artifacts yet. Let's start by mapping a business process!"
)


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def overview_text(process_count: int, opportunity_count: int,
                  blueprint_count: int, use_case_count: int) -> str:
    if not any((process_count, opportunity_count, blueprint_count, use_case_count)):
        return EMPTY_OVERVIEW

    parts = ["## Session Overview\n"]
    if process_count:
        parts.append(f"**{process_count} {_plural(process_count, 'Process', 'Processes')}** "
                     "mapped with detailed workflow steps")
    if opportunity_count:
        parts.append(f"**{opportunity_count} "
                     f"{_plural(opportunity_count, 'AI Opportunity', 'AI Opportunities')}** "
                     "identified for automation")
    if blueprint_count:
        parts.append(f"**{blueprint_count} {_plural(blueprint_count, 'Blueprint', 'Blueprints')}** "
                     "created with implementation plans")
    if use_case_count:
        parts.append(f"**{use_case_count} {_plural(use_case_count, 'AI Use Case', 'AI Use Cases')}** "
                     "registered for governance tracking")
    return "\n\n".join(parts)


def build_overview(store: ArtifactStore, workspace_id: str, metadata: dict) -> dict:
    processes = store.processes_by_ids(workspace_id, metadata.get("process_ids") or [])
    processes.sort(key=lambda p: p.created_at, reverse=True)
    opportunities = store.opportunities_by_ids(workspace_id, metadata.get("opportunity_ids") or [])
    blueprints = store.blueprints_by_ids(workspace_id, metadata.get("blueprint_ids") or [])
    use_cases = store.use_cases_by_ids(workspace_id, metadata.get("ai_use_case_ids") or [])

    return {
        "overview": overview_text(len(processes), len(opportunities),
                                  len(blueprints), len(use_cases)),
        "processes": [
            {"id": p.id, "name": p.name,
             "step_count": len(p.steps), "link_count": len(p.links)}
            for p in processes
        ],
        "opportunities": [
            {"id": o.id, "title": o.title, "impact_level": o.impact_level,
             "impact_score": o.impact_score, "feasibility_score": o.feasibility_score}
            for o in opportunities
        ],
        "blueprints": [
            {"id": b.id, "title": b.title, "version": b.version,
             "created_at": b.created_at.isoformat() if b.created_at else None}
            for b in reversed(blueprints)
        ],
        "ai_use_cases": [
            {"id": u.id, "title": u.title, "status": u.status}
            for u in reversed(use_cases)
        ],
    }
