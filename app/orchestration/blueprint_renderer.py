"""
Process Mapping Studio
Blueprint renderer — deterministic markdown for a validated BlueprintContent.

No model call happens here: the same content always renders to the same
document, so exports stay stable however the model phrased its JSON.
"""

from app.ai.schemas import BlueprintContent

FOOTER = "*Generated with Process Mapping Studio*"


def _bullets(label: str, items: list[str]) -> list[str]:
    if not items:
        return []
    return [f"**{label}:**", *[f"- {item}" for item in items], ""]


def _cell(value: str) -> str:
    return (value or "").replace("|", "\\|").replace("\n", " ")


def render_markdown(content: BlueprintContent) -> str:
    lines = [
        f"# {content.title}",
        "",
        "## Executive Summary",
        "",
        content.executive_summary,
        "",
        "## Current State",
        "",
        content.current_state,
        "",
        "## Target State",
        "",
        content.target_state,
        "",
        "## Opportunities & Selected Tools",
        "",
    ]
    for opp in content.opportunities:
        lines += [f"### {opp.title}", ""]
        if opp.summary:
            lines += [opp.summary, ""]
        lines += _bullets("Recommended Tools", opp.selected_tools)

    lines += ["## Implementation Phases", ""]
    for phase in content.phases:
        lines += [f"### {phase.name}", ""]
        if phase.duration:
            lines += [f"**Duration:** {phase.duration}", ""]
        lines += _bullets("Objectives", phase.objectives)
        lines += _bullets("Key Activities", phase.activities)
        lines += _bullets("Tools", phase.tools)
        lines += _bullets("Dependencies", phase.dependencies)
        lines += _bullets("Deliverables", phase.deliverables)

    lines += ["## Risks & Mitigations", ""]
    for risk in content.risks:
        lines += [f"### {risk.name}", "", f"**Mitigation:** {risk.mitigation}", ""]

    lines += [
        "## Key Performance Indicators",
        "",
        "| KPI | Baseline | Target |",
        "|-----|----------|--------|",
    ]
    lines += [f"| {_cell(k.name)} | {_cell(k.baseline)} | {_cell(k.target)} |" for k in content.kpis]
    lines += ["", "---", "", FOOTER, ""]
    return "\n".join(lines)
