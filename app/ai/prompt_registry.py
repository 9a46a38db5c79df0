"""
Process Mapping Studio
Prompt Registry — versioned prompt templates for every orchestration call.

    - Built-in defaults for each call the engine makes
    - Optional YAML overrides from prompts/ (or PROMPTS_DIR)
    - {{variable}} substitution

Usage:
    from app.ai.prompt_registry import PromptRegistry
    registry = PromptRegistry()
    system, user = registry.render_pair("session_summary", digest="...")
"""

import logging
import os
import re
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_PROMPTS_DIR = os.getenv(
    "PROMPTS_DIR",
    os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "prompts"),
)


class PromptTemplate:
    """A single prompt template with metadata."""

    def __init__(self, name: str, version: str, system: str, user: str,
                 description: str = "", metadata: dict | None = None):
        self.name = name
        self.version = version
        self.system = system
        self.user = user
        self.description = description
        self.metadata = metadata or {}

    def render(self, **variables) -> list[dict]:
        """
        Render template with variables, returning chat messages.

        Returns:
            [{"role": "system", ...}, {"role": "user", ...}] (empty parts omitted)
        """
        system_rendered, user_rendered = self.render_pair(**variables)
        messages = []
        if system_rendered.strip():
            messages.append({"role": "system", "content": system_rendered})
        if user_rendered.strip():
            messages.append({"role": "user", "content": user_rendered})
        return messages

    def render_pair(self, **variables) -> tuple[str, str]:
        """Render and return ``(system_prompt, user_prompt)``."""
        return (
            self._substitute(self.system, variables),
            self._substitute(self.user, variables),
        )

    @staticmethod
    def _substitute(template: str, variables: dict) -> str:
        """Replace {{var}} placeholders; unknown names are left in place."""
        def replacer(match):
            key = match.group(1).strip()
            return str(variables.get(key, f"{{{{{key}}}}}"))
        return re.sub(r'\{\{(\s*\w+\s*)\}\}', replacer, template)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "system_preview": self.system[:200],
            "user_preview": self.user[:200],
        }


class PromptRegistry:
    """
    Registry for loading and managing prompt templates.

    YAML files override built-in templates that share the same name and
    version.
    """

    def __init__(self, prompts_dir: str | None = None):
        self._prompts_dir = prompts_dir or _PROMPTS_DIR
        self._templates: dict[str, dict[str, PromptTemplate]] = {}  # name → {version → template}
        self._load_defaults()
        self._load_from_dir()

    def _load_defaults(self):
        for tpl in _DEFAULT_TEMPLATES:
            self._register(tpl)

    def _load_from_dir(self):
        """Load prompt templates from YAML files."""
        prompts_path = Path(self._prompts_dir)
        if not prompts_path.exists():
            logger.debug("Prompts directory not found: %s. Using defaults only.", self._prompts_dir)
            return

        for yaml_file in sorted(prompts_path.glob("*.yaml")):
            try:
                with open(yaml_file, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.error("Failed to load prompt %s: %s", yaml_file.name, e)
                continue
            if not data or not isinstance(data, dict):
                continue

            tpl = PromptTemplate(
                name=data.get("name", yaml_file.stem),
                version=str(data.get("version", "v1")),
                system=data.get("system", ""),
                user=data.get("user", ""),
                description=data.get("description", ""),
                metadata=data.get("metadata", {}),
            )
            self._register(tpl)
            logger.info("Loaded prompt template: %s (%s) from %s",
                        tpl.name, tpl.version, yaml_file.name)

    def _register(self, template: PromptTemplate):
        self._templates.setdefault(template.name, {})[template.version] = template

    def get(self, name: str, version: str = "v1") -> PromptTemplate | None:
        """Get a prompt template by name and version."""
        return self._templates.get(name, {}).get(version)

    def _require(self, name: str, version: str) -> PromptTemplate:
        tpl = self.get(name, version)
        if not tpl:
            raise KeyError(f"Prompt template not found: {name} {version}")
        return tpl

    def render(self, name: str, version: str = "v1", **variables) -> list[dict]:
        """Render a template into chat messages. Raises KeyError if missing."""
        return self._require(name, version).render(**variables)

    def render_pair(self, name: str, version: str = "v1", **variables) -> tuple[str, str]:
        """Render a template into ``(system_prompt, user_prompt)``."""
        return self._require(name, version).render_pair(**variables)

    def list_templates(self) -> list[dict]:
        return [
            tpl.to_dict()
            for versions in self._templates.values()
            for tpl in versions.values()
        ]


# ══════════════════════════════════════════════════════════════════════════════
# Built-in templates
# ══════════════════════════════════════════════════════════════════════════════

_DEFAULT_TEMPLATES = [
    PromptTemplate(
        name="intent_classification",
        version="v1",
        description="Classify a session message and extract structured process data in one call",
        system=(
            "You are the orchestration engine of a business process automation workspace.\n\n"
            "For every user message you must:\n"
            "1. Classify the intent and score your confidence\n"
            "2. Choose the actions to run, in order\n"
            "3. Extract structured data from the conversation\n"
            "4. Identify references to artifacts that already exist\n"
            "5. Write a natural-language reply to the user\n\n"
            "INTENTS:\n"
            "- process_description: the user describes a NEW business process with steps\n"
            "- refine_process: the user clarifies, extends or corrects an EXISTING process\n"
            "- reference_existing_artifact: the user points at \"that process\", \"the last blueprint\"\n"
            "- opportunity_request: the user asks for automation opportunities\n"
            "- blueprint_request: the user wants an implementation blueprint\n"
            "- governance_request: the user wants to register an AI use case\n"
            "- session_summary_request: the user asks for a summary of the session\n"
            "- clarification_needed: you cannot extract enough to act\n"
            "- general_question: any other question or conversation\n\n"
            "ACTIONS:\n"
            "- extract_process: create a NEW process with its steps\n"
            "- refine_process: update an EXISTING process (name it in data.process_name or target_ids.process_id)\n"
            "- scan_opportunities: analyze process steps for automation opportunities\n"
            "- generate_blueprint: create an implementation blueprint\n"
            "- create_use_case: register an AI use case for governance tracking\n"
            "- generate_summary: summarize the session\n"
            "- respond_only: reply without changing anything\n\n"
            "CONFIDENCE:\n"
            "- intent_confidence (0.0-1.0): how sure you are about what the user wants\n"
            "- extraction_confidence (0.0-1.0): how complete the extracted data is\n"
            "- Below 0.6 prefer clarification_needed\n\n"
            "EXISTING ARTIFACTS (match user references against these):\n"
            "  Processes: {{processes}}\n"
            "  Opportunities: {{opportunities}}\n"
            "  Blueprints: {{blueprints}}\n"
            "  AI use cases: {{use_cases}}\n"
            "If several artifacts could match an ambiguous reference, use clarification_needed.\n\n"
            "CHOOSING BETWEEN extract_process AND refine_process:\n"
            "- extract_process when nothing already discussed is referenced\n"
            "- refine_process when the user builds on a process listed above, even if they "
            "word its name slightly differently\n\n"
            "Return ONLY valid JSON in this format:\n"
            "{\n"
            '  "intent": "process_description",\n'
            '  "actions": ["extract_process"],\n'
            '  "intent_confidence": 0.9,\n'
            '  "extraction_confidence": 0.85,\n'
            '  "target_ids": {"process_id": null, "opportunity_id": null, "blueprint_id": null, "ai_use_case_id": null},\n'
            '  "explanation": "Reply to the user",\n'
            '  "data": {\n'
            '    "process_name": "...",\n'
            '    "process_description": "...",\n'
            '    "steps": [{"title": "...", "description": "...", "owner": "...", '
            '"inputs": [], "outputs": [], "frequency": "...", "duration": "..."}],\n'
            '    "use_case_title": null,\n'
            '    "use_case_description": null\n'
            "  }\n"
            "}"
        ),
        user="",
    ),
    PromptTemplate(
        name="clarification",
        version="v1",
        description="Ask one focused follow-up question when the engine will not act",
        system=(
            "You ask clarifying questions when a request is ambiguous or incomplete.\n\n"
            "- Ask exactly ONE focused follow-up question (max 2 sentences)\n"
            "- Refer to what the user said and what is missing\n"
            "- Be conversational\n\n"
            "Reason for clarification: {{reason}}\n\n"
            "Session context:\n{{session_context}}\n\n"
            "Good examples:\n"
            "- \"You mentioned an invoice process. Can you outline the key steps from start to finish?\"\n"
            "- \"Which process should I scan: 'Invoice Approval' or 'Customer Onboarding'?\""
        ),
        user="{{user_message}}",
    ),
    PromptTemplate(
        name="opportunity_analysis",
        version="v1",
        description="Score one process step as an automation candidate",
        system=(
            "You are a consultant who identifies automation opportunities in business processes.\n\n"
            "For the given step decide whether AI or automation can meaningfully improve it, the "
            "potential impact and the effort needed. Consider volume and repetition, manual data "
            "handling, standardized inputs (emails, PDFs, forms), judgment that AI could augment, "
            "and error-proneness.\n\n"
            "Impact: high (>50% of step time saved, daily), medium (20-50%, weekly), low (<20%).\n"
            "Effort: low (standard tools), medium (some integration), high (custom build).\n\n"
            "Return ONLY valid JSON:\n"
            "{\n"
            '  "title": "Brief, actionable title",\n'
            '  "opportunity_type": "document_processing | data_entry | communication | analysis | '
            'decision_support | workflow_automation",\n'
            '  "impact_level": "low | medium | high",\n'
            '  "effort_level": "low | medium | high",\n'
            '  "impact_score": 0-100,\n'
            '  "feasibility_score": 0-100,\n'
            '  "rationale": "2-3 sentences"\n'
            "}\n\n"
            "If the step has NO meaningful opportunity return impact_score 0 and "
            "opportunity_type \"none\"."
        ),
        user=(
            "Analyze this process step for automation opportunities:\n\n"
            "Step Title: {{title}}\n"
            "Description: {{description}}\n"
            "Owner/Role: {{owner}}\n"
            "Frequency: {{frequency}}\n"
            "Duration: {{duration}}\n"
            "Inputs: {{inputs}}\n"
            "Outputs: {{outputs}}\n\n"
            "Heuristic hints (advisory):\n{{hints}}"
        ),
    ),
    PromptTemplate(
        name="blueprint_generation",
        version="v1",
        description="Structured implementation blueprint from processes, opportunities and tools",
        system=(
            "You are an expert consultant writing implementation blueprints for business "
            "automation projects.\n\n"
            "The blueprint must: give an executive summary for senior stakeholders, describe "
            "the current and target state, group the opportunities, define 3-5 ordered phases, "
            "list realistic risks with mitigations, and propose measurable KPIs.\n\n"
            "Return ONLY valid JSON in this structure:\n"
            "{\n"
            '  "title": "AI Implementation Blueprint for ...",\n'
            '  "executive_summary": "...",\n'
            '  "current_state": "...",\n'
            '  "target_state": "...",\n'
            '  "opportunities": [{"id": "...", "title": "...", "summary": "...", "selected_tools": ["..."]}],\n'
            '  "phases": [{"name": "...", "duration": "...", "objectives": [], "activities": [], '
            '"tools": [], "dependencies": [], "deliverables": []}],\n'
            '  "risks": [{"name": "...", "mitigation": "..."}],\n'
            '  "kpis": [{"name": "...", "baseline": "...", "target": "..."}]\n'
            "}\n\n"
            "Be specific and use the actual process, step and tool names provided."
        ),
        user="Create an implementation blueprint for this project:\n\n{{brief}}",
    ),
    PromptTemplate(
        name="risk_assessment",
        version="v1",
        description="Conservative risk & impact draft for an AI use case",
        system=(
            "You are an AI governance consultant. Draft a structured risk & impact assessment "
            "for the AI use case you are given.\n\n"
            "Be conservative: identify realistic risks, not just benefits. Consider data "
            "privacy and security, bias and fairness, operational dependencies and failure "
            "modes, compliance obligations, and business impact if the system misbehaves.\n\n"
            "Return ONLY valid JSON with no markdown."
        ),
        user=(
            "AI Use Case: {{title}}\n"
            "Description: {{description}}\n\n"
            "Return a conservative risk assessment in this JSON format:\n"
            "{\n"
            '  "risk_level": "low | medium | high | critical",\n'
            '  "impact_areas": ["customers", "employees", "business", "compliance"],\n'
            '  "data_sensitivity": "none | low | medium | high",\n'
            '  "regulatory_relevance": ["GDPR"],\n'
            '  "summary_text": "Plain-language summary of the risk profile",\n'
            '  "risks": [{"title": "...", "description": "...", "mitigation": "..."}],\n'
            '  "assumptions": ["..."],\n'
            '  "residual_risk_text": "Remaining risk after mitigations"\n'
            "}"
        ),
    ),
    PromptTemplate(
        name="tool_rationale",
        version="v1",
        description="Short rationale for recommending a catalog tool",
        system=(
            "You are a helpful AI consultant. Provide clear, concise tool recommendations."
        ),
        user=(
            "Opportunity:\n"
            "- Title: {{opportunity_title}}\n"
            "- Type: {{opportunity_type}}\n"
            "- Impact Level: {{impact_level}}\n"
            "- Description: {{opportunity_rationale}}\n\n"
            "Tool:\n"
            "- Name: {{tool_name}}\n"
            "- Category: {{tool_category}}\n"
            "- Description: {{tool_description}}\n"
            "- Pricing: {{pricing_tier}}\n"
            "- Integration Complexity: {{integration_complexity}}\n\n"
            "Write a 2-3 sentence rationale explaining why this tool fits this opportunity. "
            "Cover how its capabilities address the need, the key benefits and any pricing "
            "or complexity considerations.\n\n"
            "Return ONLY the rationale text, no JSON or extra formatting."
        ),
    ),
    PromptTemplate(
        name="session_summary",
        version="v1",
        description="Two-to-three sentence summary of a work session",
        system=(
            "You write concise, informative summaries of work sessions. Summarize the key "
            "activities, artifacts created and outcomes in 2-3 sentences. Be specific about "
            "what was accomplished."
        ),
        user="Summarize this work session:\n\n{{digest}}",
    ),
    PromptTemplate(
        name="session_title",
        version="v1",
        description="Short descriptive session title",
        system=(
            "You create short, descriptive titles (max 60 characters) for consulting sessions "
            "about business processes and automation. The title must be specific to the "
            "process or domain discussed, e.g. \"Invoice Approval in Finance\" or "
            "\"HR Onboarding Automations\".\n\n"
            'Respond with ONLY valid JSON: {"title": "Your Title Here"}'
        ),
        user="{{context}}",
    ),
]
