"""
Process Mapping Studio
Tool service — automation tool catalog, recommendations and user selection.

Recommendations are ranked locally (category fit, keyword hints, use-case
overlap, pricing and complexity adjustments); only the top matches get a
model-written rationale. Selected tools feed the blueprint brief.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from app.core.exceptions import LLMError, NotFoundError, ValidationError
from app.models import db
from app.models.opportunity import Opportunity, OpportunityTool, Tool

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 5
MIN_MATCH_SCORE = 0.1

# opportunity type -> tool categories that address it
CATEGORY_MAPPING: dict[str, tuple[str, ...]] = {
    "document_processing": ("ocr", "llm_agent", "data_extraction"),
    "data_entry": ("rpa", "workflow_automation", "data_extraction"),
    "communication": ("llm_agent", "workflow_automation", "integration"),
    "analysis": ("llm_agent", "data_extraction"),
    "decision_support": ("llm_agent", "workflow_automation"),
    "workflow_automation": ("workflow_automation", "rpa", "integration"),
}

KEYWORD_PATTERNS: dict[str, tuple[str, ...]] = {
    "invoice": ("ocr", "data_extraction"),
    "email": ("llm_agent", "integration"),
    "pdf": ("ocr", "data_extraction"),
    "spreadsheet": ("rpa", "data_extraction"),
    "ticket": ("llm_agent", "workflow_automation"),
    "customer": ("llm_agent", "integration"),
    "api": ("integration", "workflow_automation"),
    "database": ("rpa", "integration"),
}


# ── Catalog ──────────────────────────────────────────────────────────────


def list_tools(category: str | None = None) -> list[Tool]:
    stmt = select(Tool).order_by(Tool.name.asc())
    if category:
        stmt = stmt.where(Tool.category == category)
    return db.session.scalars(stmt).all()


def seed_default_tools() -> int:
    """
    Insert the default tool catalog.

    Safe to run multiple times: tools are keyed by name and existing rows are
    left untouched. Returns the number of tools created. The caller commits.
    """
    existing = set(db.session.scalars(select(Tool.name)).all())
    created = 0
    for data in _default_tools():
        if data["name"] in existing:
            continue
        db.session.add(Tool(**data))
        created += 1

    if created:
        db.session.flush()
        logger.info("Seeded %d catalog tools", created)
    return created


# ── Matching ─────────────────────────────────────────────────────────────


def score_tool(opportunity: Opportunity, tool: Tool) -> float:
    """Heuristic fit of ``tool`` for ``opportunity`` in [0, 1]."""
    score = 0.0
    if tool.category in CATEGORY_MAPPING.get(opportunity.opportunity_type, ()):
        score += 0.4

    text = " ".join(
        part for part in (opportunity.title, opportunity.description, opportunity.rationale)
        if part
    ).lower()
    for keyword, categories in KEYWORD_PATTERNS.items():
        if keyword in text and tool.category in categories:
            score += 0.2

    use_cases = tool.use_cases or []
    if any(uc == opportunity.opportunity_type or uc in text for uc in use_cases):
        score += 0.2

    if opportunity.effort_level == "low" and tool.integration_complexity == "high":
        score -= 0.15

    if tool.pricing_tier == "enterprise":
        if opportunity.impact_level == "high":
            score += 0.1
        elif opportunity.impact_level == "low":
            score -= 0.1
    if opportunity.impact_level == "low" and tool.pricing_tier == "free":
        score += 0.1

    return round(max(0.0, min(1.0, score)), 2)


def rank_tools(opportunity: Opportunity, tools: list[Tool]) -> list[tuple[Tool, float]]:
    scored = [(tool, score_tool(opportunity, tool)) for tool in tools]
    ranked = [pair for pair in scored if pair[1] > MIN_MATCH_SCORE]
    ranked.sort(key=lambda pair: (-pair[1], pair[0].name))
    return ranked


def _get_opportunity(opportunity_id: str) -> Opportunity:
    opportunity = db.session.get(Opportunity, opportunity_id)
    if opportunity is None:
        raise NotFoundError(resource="Opportunity", resource_id=opportunity_id)
    return opportunity


def _find_link(opportunity_id: str, tool_id: str) -> OpportunityTool | None:
    return db.session.scalars(
        select(OpportunityTool).where(
            OpportunityTool.opportunity_id == opportunity_id,
            OpportunityTool.tool_id == tool_id,
        )
    ).first()


def _rationale(opportunity: Opportunity, tool: Tool, gateway, prompt_registry) -> str:
    system, user = prompt_registry.render_pair(
        "tool_rationale",
        opportunity_title=opportunity.title,
        opportunity_type=opportunity.opportunity_type,
        impact_level=opportunity.impact_level,
        opportunity_rationale=opportunity.rationale or "",
        tool_name=tool.name,
        tool_category=tool.category,
        tool_description=tool.description or "",
        pricing_tier=tool.pricing_tier,
        integration_complexity=tool.integration_complexity,
    )
    try:
        text = gateway.complete(
            system, [{"role": "user", "content": user}],
            temperature=0.7, max_tokens=200, purpose="tool_rationale",
            workspace_id=opportunity.process.workspace_id,
        ).strip()
    except LLMError as e:
        logger.warning("Tool rationale failed for %s: %s", tool.name, e)
        return (f"{tool.name} is a {tool.category} tool that can help automate this "
                f"{opportunity.opportunity_type} opportunity.")
    return text or (f"{tool.name} is well-suited for {opportunity.opportunity_type} tasks "
                    f"with {tool.integration_complexity} integration complexity.")


def recommendations(opportunity_id: str) -> list[OpportunityTool]:
    """Stored recommendations, best match first."""
    _get_opportunity(opportunity_id)
    return db.session.scalars(
        select(OpportunityTool)
        .where(OpportunityTool.opportunity_id == opportunity_id)
        .order_by(OpportunityTool.match_score.desc(), OpportunityTool.created_at.asc())
    ).all()


def recommend_tools(opportunity_id: str, gateway, prompt_registry) -> list[OpportunityTool]:
    """
    Rank the catalog for an opportunity and upsert the top matches.

    Re-running refreshes scores and rationales; ``user_selected`` is kept.
    """
    opportunity = _get_opportunity(opportunity_id)
    tools = db.session.scalars(select(Tool)).all()
    if not tools:
        logger.warning("Tool catalog is empty; run `flask seed-tools`")
        return []

    for tool, score in rank_tools(opportunity, tools)[:MAX_RECOMMENDATIONS]:
        link = _find_link(opportunity.id, tool.id)
        if link is None:
            link = OpportunityTool(opportunity_id=opportunity.id, tool_id=tool.id)
            db.session.add(link)
        link.match_score = round(score * 100)
        link.rationale = _rationale(opportunity, tool, gateway, prompt_registry)
    db.session.commit()

    logger.info("Recommended tools for opportunity %s", opportunity.id,
                extra={"workspace_id": opportunity.process.workspace_id})
    return recommendations(opportunity.id)


def get_or_recommend(opportunity_id: str, gateway, prompt_registry) -> list[OpportunityTool]:
    existing = recommendations(opportunity_id)
    if existing:
        return existing
    return recommend_tools(opportunity_id, gateway, prompt_registry)


def set_selection(opportunity_id: str, tool_id: str, data: dict) -> OpportunityTool:
    """Mark a tool as selected (or not) for an opportunity's blueprint."""
    selected = data.get("user_selected")
    if not isinstance(selected, bool):
        raise ValidationError("user_selected must be a boolean",
                              details={"field": "user_selected"})

    opportunity = _get_opportunity(opportunity_id)
    tool = db.session.get(Tool, tool_id)
    if tool is None:
        raise NotFoundError(resource="Tool", resource_id=tool_id)

    link = _find_link(opportunity.id, tool.id)
    if link is None:
        link = OpportunityTool(opportunity_id=opportunity.id, tool_id=tool.id)
        db.session.add(link)
    link.user_selected = selected
    db.session.commit()
    return link


def _default_tools() -> list[dict]:
    return [
        # OCR / document processing
        {
            "name": "Textract",
            "vendor": "Amazon Web Services",
            "category": "ocr",
            "description": "Extracts text, handwriting and data from scanned documents. "
                           "Works with forms, invoices, receipts and IDs.",
            "use_cases": ["invoice_extraction", "document_processing", "form_parsing"],
            "pricing_tier": "paid",
            "integration_complexity": "medium",
            "security_notes": "SOC 2, HIPAA and PCI DSS compliant.",
            "website_url": "https://aws.amazon.com/textract/",
        },
        {
            "name": "Docparser",
            "vendor": "Docparser",
            "category": "data_extraction",
            "description": "Template-based data extraction from PDF documents with export "
                           "to 100+ apps. No coding required.",
            "use_cases": ["invoice_extraction", "document_processing", "data_entry"],
            "pricing_tier": "freemium",
            "integration_complexity": "low",
            "security_notes": "GDPR compliant. Data deleted after 30 days.",
            "website_url": "https://docparser.com/",
        },
        {
            "name": "Rossum",
            "vendor": "Rossum",
            "category": "ocr",
            "description": "AI document processing for invoices, purchase orders and "
                           "receipts. Learns from corrections.",
            "use_cases": ["invoice_extraction", "ap_automation", "document_processing"],
            "pricing_tier": "paid",
            "integration_complexity": "medium",
            "website_url": "https://rossum.ai/",
        },
        # Workflow automation
        {
            "name": "Zapier",
            "vendor": "Zapier",
            "category": "workflow_automation",
            "description": "Connects thousands of apps and automates event-triggered "
                           "workflows without code.",
            "use_cases": ["workflow_automation", "integration", "data_sync", "notification"],
            "pricing_tier": "freemium",
            "integration_complexity": "low",
            "security_notes": "SOC 2 Type II, GDPR compliant.",
            "website_url": "https://zapier.com/",
        },
        {
            "name": "n8n",
            "vendor": "n8n",
            "category": "workflow_automation",
            "description": "Open-source, self-hostable workflow automation with 350+ "
                           "integrations.",
            "use_cases": ["workflow_automation", "integration", "data_sync"],
            "pricing_tier": "free",
            "integration_complexity": "medium",
            "website_url": "https://n8n.io/",
        },
        {
            "name": "Workato",
            "vendor": "Workato",
            "category": "workflow_automation",
            "description": "Enterprise automation platform with 1,000+ connectors, "
                           "combining integration and RPA.",
            "use_cases": ["workflow_automation", "integration", "data_sync", "business_process"],
            "pricing_tier": "enterprise",
            "integration_complexity": "medium",
            "website_url": "https://www.workato.com/",
        },
        # RPA
        {
            "name": "UiPath",
            "vendor": "UiPath",
            "category": "rpa",
            "description": "Enterprise RPA for repetitive tasks: screen scraping, data "
                           "entry and system integration.",
            "use_cases": ["data_entry", "workflow_automation", "system_integration"],
            "pricing_tier": "enterprise",
            "integration_complexity": "high",
            "website_url": "https://www.uipath.com/",
        },
        {
            "name": "Power Automate Desktop",
            "vendor": "Microsoft",
            "category": "rpa",
            "description": "Desktop automation that records and replays tasks and "
                           "integrates with Office 365.",
            "use_cases": ["data_entry", "desktop_automation", "workflow_automation"],
            "pricing_tier": "freemium",
            "integration_complexity": "low",
            "website_url": "https://powerautomate.microsoft.com/desktop/",
        },
        # LLM agents
        {
            "name": "OpenAI API",
            "vendor": "OpenAI",
            "category": "llm_agent",
            "description": "Language models for generation, summarization, classification "
                           "and extraction.",
            "use_cases": ["text_generation", "email_response", "data_extraction",
                          "classification", "summarization"],
            "pricing_tier": "paid",
            "integration_complexity": "medium",
            "website_url": "https://openai.com/api/",
        },
        {
            "name": "Anthropic Claude",
            "vendor": "Anthropic",
            "category": "llm_agent",
            "description": "Models for analysis, summarization and complex reasoning.",
            "use_cases": ["text_analysis", "summarization", "data_extraction",
                          "decision_support"],
            "pricing_tier": "paid",
            "integration_complexity": "medium",
            "website_url": "https://www.anthropic.com/",
        },
        {
            "name": "SaneBox",
            "vendor": "SaneBox",
            "category": "llm_agent",
            "description": "AI email filtering and prioritization with snooze and reminders.",
            "use_cases": ["email_triage", "inbox_management", "communication"],
            "pricing_tier": "paid",
            "integration_complexity": "low",
            "website_url": "https://www.sanebox.com/",
        },
        # Integration
        {
            "name": "Tray.io",
            "vendor": "Tray.io",
            "category": "integration",
            "description": "Enterprise integration platform for connecting cloud apps at "
                           "scale.",
            "use_cases": ["integration", "workflow_automation", "data_sync"],
            "pricing_tier": "enterprise",
            "integration_complexity": "high",
            "website_url": "https://tray.io/",
        },
    ]
