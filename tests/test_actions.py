"""
Action handlers driven through the orchestrator: extraction, refinement,
opportunity scanning, blueprint generation, governance and summaries.
"""

from sqlalchemy import func, select

from app.core.exceptions import LLMError
from app.models import db
from app.models.blueprint import Blueprint
from app.models.governance import AiRiskAssessment, AiUseCase
from app.models.opportunity import Opportunity
from app.models.process import Process, ProcessLink, ProcessStep
from app.models.session import AssistantSession
from app.models.workspace import Project
from app.orchestration.actions.opportunity_scan import NO_HINTS, heuristic_hints
from app.orchestration.blueprint_renderer import FOOTER, render_markdown
from app.ai.schemas import BlueprintContent

from conftest import (
    BLUEPRINT_CONTENT,
    INVOICE_DECISION,
    INVOICE_STEPS,
    RISK_DRAFT,
    analysis,
    decision,
)


def _count(model):
    return db.session.scalar(select(func.count()).select_from(model))


def _extract(orchestrator, llm, make_context, metadata=None):
    llm.script("intent_classification", INVOICE_DECISION)
    result = orchestrator.orchestrate(make_context(metadata), "We receive invoices by email...")
    assert result.executed
    return result


def _impact_by_title(zero_titles=()):
    def respond(system, messages):
        content = messages[-1]["content"]
        for title in zero_titles:
            if f"Step Title: {title}\n" in content:
                return analysis(title="No opportunity", impact_score=0)
        return analysis()
    return respond


def _scan_decision(**extra):
    return decision("opportunity_request", ["scan_opportunities"],
                    explanation="Scanning for opportunities.", **extra)


# ═════════════════════════════════════════════════════════════════════════
# Extraction
# ═════════════════════════════════════════════════════════════════════════


class TestProcessExtraction:

    def test_invoice_process(self, orchestrator, llm, make_context, workspace):
        result = _extract(orchestrator, llm, make_context)

        processes = db.session.scalars(select(Process)).all()
        assert len(processes) == 1
        process = processes[0]
        assert process.name == "Invoice Processing"
        assert [s.title for s in process.steps] == [s["title"] for s in INVOICE_STEPS]
        assert [s.position_x for s in process.steps] == [0, 200, 400]

        s1, s2, s3 = process.steps
        pairs = {(ln.from_step_id, ln.to_step_id) for ln in process.links}
        assert pairs == {(s1.id, s2.id), (s2.id, s3.id)}
        assert _count(ProcessLink) == 2

        assert result.updated_metadata["process_ids"] == [process.id]
        assert result.updated_metadata["project_id"] == process.project_id
        assert result.artifacts.created_processes[0]["link_count"] == 2
        assert len(result.artifacts.created_steps) == 3
        assert result.ui == {"scroll_to": "processes", "highlight_id": process.id}
        assert result.next_step_suggestion.action_type == "scan_opportunities"

    def test_default_project_created_once(self, orchestrator, llm, make_context, workspace):
        first = _extract(orchestrator, llm, make_context)
        _extract(orchestrator, llm, make_context, first.updated_metadata)
        projects = db.session.scalars(select(Project)).all()
        assert len(projects) == 1
        assert projects[0].is_default

    def test_step_fields_copied(self, orchestrator, llm, make_context):
        _extract(orchestrator, llm, make_context)
        step = db.session.scalars(
            select(ProcessStep).where(ProcessStep.title == "Enter invoice into ERP")
        ).one()
        assert step.owner == "AP clerk"
        assert step.duration == "10 minutes"

    def test_single_step_is_rejected_by_gate(self, orchestrator, llm, make_context):
        llm.script("intent_classification", decision(
            "process_description", ["extract_process"],
            data={"process_name": "Tiny", "steps": [{"title": "Only step"}]},
        ))
        llm.script("clarification", "What happens after that step?")
        result = orchestrator.orchestrate(make_context(), "We do one thing")
        assert result.clarification.reason == "low_extraction_confidence"
        assert _count(Process) == 0


# ═════════════════════════════════════════════════════════════════════════
# Refinement
# ═════════════════════════════════════════════════════════════════════════


class TestProcessRefinement:

    def _refine(self, orchestrator, llm, make_context, metadata, process_id, steps, **data):
        llm.script("intent_classification", decision(
            "refine_process", ["refine_process"], explanation="Updated.",
            target_ids={"process_id": process_id},
            data={"steps": steps, **data},
        ))
        result = orchestrator.orchestrate(make_context(metadata), "Change the steps")
        assert result.success
        return result

    def test_identical_steps_are_idempotent(self, orchestrator, llm, make_context):
        first = _extract(orchestrator, llm, make_context)
        process_id = first.updated_metadata["process_ids"][0]
        step_ids = [s.id for s in db.session.get(Process, process_id).steps]

        for _ in range(2):
            result = self._refine(orchestrator, llm, make_context, first.updated_metadata,
                                  process_id, INVOICE_STEPS)
            refinement = result.artifacts.refinements[0]
            assert refinement["created_step_ids"] == []
            assert refinement["deleted_step_ids"] == []
            assert refinement["updated_step_ids"] == step_ids

        assert _count(ProcessStep) == 3
        assert _count(ProcessLink) == 2

    def test_changed_steps(self, orchestrator, llm, make_context):
        first = _extract(orchestrator, llm, make_context)
        process_id = first.updated_metadata["process_ids"][0]
        process = db.session.get(Process, process_id)
        receive, enter, approve = [s.id for s in process.steps]

        result = self._refine(orchestrator, llm, make_context, first.updated_metadata, process_id, [
            {"title": "Receive invoice by email"},
            {"title": "Validate invoice"},
            {"title": "Enter invoice into ERP"},
        ], process_name="Invoice Handling")
        refinement = result.artifacts.refinements[0]
        assert refinement["updated_step_ids"] == [receive, enter]
        assert refinement["deleted_step_ids"] == [approve]
        assert len(refinement["created_step_ids"]) == 1

        db.session.expire_all()
        process = db.session.get(Process, process_id)
        assert process.name == "Invoice Handling"
        titles = [s.title for s in process.steps]
        assert titles == ["Receive invoice by email", "Validate invoice", "Enter invoice into ERP"]
        s1, s2, s3 = process.steps
        assert {(ln.from_step_id, ln.to_step_id) for ln in process.links} == {
            (s1.id, s2.id), (s2.id, s3.id),
        }
        # untouched fields survive a refinement that does not mention them
        assert s1.owner == "AP clerk"

    def test_removed_step_detaches_opportunity(self, orchestrator, llm, make_context):
        first = _extract(orchestrator, llm, make_context)
        process_id = first.updated_metadata["process_ids"][0]
        llm.script("intent_classification", _scan_decision())
        llm.script("opportunity_analysis", _impact_by_title())
        scanned = orchestrator.orchestrate(make_context(first.updated_metadata), "Scan it")
        assert len(scanned.updated_metadata["opportunity_ids"]) == 3

        self._refine(orchestrator, llm, make_context, scanned.updated_metadata, process_id,
                     INVOICE_STEPS[:2])
        db.session.expire_all()
        opportunities = db.session.scalars(select(Opportunity)).all()
        assert len(opportunities) == 3
        assert sum(1 for o in opportunities if o.step_id is None) == 1

    def test_unresolvable_reference_asks(self, orchestrator, llm, make_context):
        llm.script("intent_classification", decision(
            "refine_process", ["refine_process"],
            data={"process_name": "Payroll", "steps": INVOICE_STEPS},
        ))
        result = orchestrator.orchestrate(make_context(), "Update payroll")
        assert result.success
        assert result.clarification.reason == "ambiguous_reference"
        assert result.actions[0].status == "halted"
        assert _count(ProcessStep) == 0


# ═════════════════════════════════════════════════════════════════════════
# Opportunity scanning
# ═════════════════════════════════════════════════════════════════════════


class TestOpportunityScan:

    def test_scan_is_an_upsert(self, orchestrator, llm, make_context):
        first = _extract(orchestrator, llm, make_context)
        llm.script("intent_classification", _scan_decision())
        llm.script("opportunity_analysis", _impact_by_title())

        once = orchestrator.orchestrate(make_context(first.updated_metadata), "Scan")
        twice = orchestrator.orchestrate(make_context(once.updated_metadata), "Scan again")

        assert _count(Opportunity) == 3
        assert len(twice.updated_metadata["opportunity_ids"]) == 3
        assert set(twice.updated_metadata["opportunity_ids"]) == set(
            once.updated_metadata["opportunity_ids"])

    def test_zero_impact_not_persisted(self, orchestrator, llm, make_context):
        first = _extract(orchestrator, llm, make_context)
        llm.script("intent_classification", _scan_decision())
        llm.script("opportunity_analysis", _impact_by_title(zero_titles=("Approve payment",)))

        result = orchestrator.orchestrate(make_context(first.updated_metadata), "Scan")
        assert _count(Opportunity) == 2
        assert len(result.artifacts.created_opportunities) == 2
        approve = db.session.scalars(
            select(ProcessStep).where(ProcessStep.title == "Approve payment")
        ).one()
        assert approve.opportunities == []

    def test_failed_step_is_skipped(self, orchestrator, llm, make_context):
        first = _extract(orchestrator, llm, make_context)
        llm.script("intent_classification", _scan_decision())

        def respond(system, messages):
            if "Step Title: Enter invoice into ERP\n" in messages[-1]["content"]:
                raise LLMError("timeout")
            return analysis()

        llm.script("opportunity_analysis", respond)
        result = orchestrator.orchestrate(make_context(first.updated_metadata), "Scan")
        assert result.success
        assert _count(Opportunity) == 2

    def test_scan_settings_of_each_call(self, orchestrator, llm, make_context):
        first = _extract(orchestrator, llm, make_context)
        llm.script("intent_classification", _scan_decision())
        llm.script("opportunity_analysis", analysis())
        orchestrator.orchestrate(make_context(first.updated_metadata), "Scan")

        calls = llm.calls_for("opportunity_analysis")
        assert len(calls) == 3
        assert all(c["json_mode"] and c["temperature"] == 0.3 and c["max_tokens"] == 1000
                   for c in calls)

    def test_extract_then_scan_in_one_turn(self, orchestrator, llm, make_context):
        llm.script("intent_classification", {
            **INVOICE_DECISION, "actions": ["extract_process", "scan_opportunities"],
        })
        llm.script("opportunity_analysis", analysis())
        result = orchestrator.orchestrate(make_context(), "Map it and find opportunities")
        assert [a.status for a in result.actions] == ["success", "success"]
        assert len(result.updated_metadata["opportunity_ids"]) == 3
        assert result.next_step_suggestion.action_type == "generate_blueprint"

    def test_refine_then_scan_targets_refined_process(self, orchestrator, llm, make_context):
        first = _extract(orchestrator, llm, make_context)
        invoice_id = first.updated_metadata["process_ids"][0]
        llm.script("intent_classification", decision(
            "process_description", ["extract_process"], explanation="Mapped onboarding.",
            data={"process_name": "Vendor Onboarding",
                  "steps": [{"title": "Collect tax form"}, {"title": "Create vendor record"}]},
        ))
        second = orchestrator.orchestrate(make_context(first.updated_metadata), "Onboarding")
        assert second.updated_metadata["process_ids"][-1] != invoice_id

        llm.script("intent_classification", decision(
            "refine_process", ["refine_process", "scan_opportunities"],
            explanation="Updated and scanned.",
            data={"process_name": "Invoice Processing",
                  "process_description": "Supplier invoices end to end"},
        ))
        llm.script("opportunity_analysis", analysis())
        result = orchestrator.orchestrate(make_context(second.updated_metadata),
                                          "Update the invoice process and find opportunities")

        assert [a.status for a in result.actions] == ["success", "success"]
        opportunities = db.session.scalars(select(Opportunity)).all()
        assert len(opportunities) == 3
        assert {o.process_id for o in opportunities} == {invoice_id}

    def test_no_process_to_scan(self, orchestrator, llm, make_context):
        llm.script("intent_classification", _scan_decision())
        result = orchestrator.orchestrate(make_context(), "Scan")
        assert result.success is False
        assert result.actions[0].status == "failed"


class TestHeuristicHints:

    def test_frequency_and_keywords(self):
        hints = heuristic_hints({"title": "Manually enter invoice", "frequency": "Daily",
                                 "duration": "30 minutes"})
        assert any("High frequency" in h for h in hints)
        assert any("Significant time" in h for h in hints)
        assert any("Manual data handling" in h for h in hints)
        assert any("Structured documents" in h for h in hints)

    def test_no_hints(self):
        assert heuristic_hints({"title": "Think"}) == []
        assert NO_HINTS.startswith("No specific")


# ═════════════════════════════════════════════════════════════════════════
# Blueprint generation
# ═════════════════════════════════════════════════════════════════════════


class TestBlueprintGeneration:

    def _blueprint_decision(self):
        return decision("blueprint_request", ["generate_blueprint"], explanation="Blueprint ready.")

    def test_no_processes_fails_without_row(self, orchestrator, llm, make_context):
        llm.script("intent_classification", self._blueprint_decision())
        llm.script("blueprint_generation", BLUEPRINT_CONTENT)
        result = orchestrator.orchestrate(make_context(), "Make a blueprint")
        assert result.success is False
        assert _count(Blueprint) == 0
        assert llm.calls_for("blueprint_generation") == []

    def test_versions_increase(self, orchestrator, llm, make_context):
        first = _extract(orchestrator, llm, make_context)
        llm.script("intent_classification", self._blueprint_decision())
        llm.script("blueprint_generation", BLUEPRINT_CONTENT)

        one = orchestrator.orchestrate(make_context(first.updated_metadata), "Blueprint")
        two = orchestrator.orchestrate(make_context(one.updated_metadata), "Again")

        blueprints = db.session.scalars(select(Blueprint).order_by(Blueprint.version)).all()
        assert [b.version for b in blueprints] == [1, 2]
        assert two.updated_metadata["blueprint_ids"] == [b.id for b in blueprints]
        assert blueprints[0].metadata_json["process_count"] == 1
        assert "## Executive Summary" in blueprints[0].rendered_markdown
        assert one.ui["scroll_to"] == "blueprints"

    def test_invalid_content_fails(self, orchestrator, llm, make_context):
        first = _extract(orchestrator, llm, make_context)
        llm.script("intent_classification", self._blueprint_decision())
        llm.script("blueprint_generation", {"title": "Half a blueprint"})
        result = orchestrator.orchestrate(make_context(first.updated_metadata), "Blueprint")
        assert result.success is False
        assert _count(Blueprint) == 0

    def test_brief_mentions_processes(self, orchestrator, llm, make_context):
        first = _extract(orchestrator, llm, make_context)
        llm.script("intent_classification", self._blueprint_decision())
        llm.script("blueprint_generation", BLUEPRINT_CONTENT)
        orchestrator.orchestrate(make_context(first.updated_metadata), "Blueprint")
        user = llm.calls_for("blueprint_generation")[0]["messages"][-1]["content"]
        assert "Invoice Processing:" in user
        assert "No opportunities identified yet." in user


class TestBlueprintRenderer:

    def test_sections(self):
        md = render_markdown(BlueprintContent.model_validate(BLUEPRINT_CONTENT))
        assert md.startswith("# Invoice Automation Blueprint")
        for heading in ("## Current State", "## Target State", "## Implementation Phases",
                        "## Risks & Mitigations", "## Key Performance Indicators"):
            assert heading in md
        assert "| Cycle time | 5 days | 1 day |" in md
        assert md.rstrip().endswith(FOOTER)


# ═════════════════════════════════════════════════════════════════════════
# Governance
# ═════════════════════════════════════════════════════════════════════════


class TestGovernance:

    def _decision(self, **data):
        return decision("governance_request", ["create_use_case"], explanation="Registered.",
                        data=data or {"use_case_title": "Invoice capture AI",
                                      "use_case_description": "OCR on inbound invoices"})

    def test_use_case_with_risk_draft(self, orchestrator, llm, make_context):
        llm.script("intent_classification", self._decision())
        llm.script("risk_assessment", RISK_DRAFT)
        result = orchestrator.orchestrate(make_context(), "Register it")

        use_case = db.session.scalars(select(AiUseCase)).one()
        assert result.updated_metadata["ai_use_case_ids"] == [use_case.id]
        assert use_case.risk_assessment.risk_level == "medium"
        assert use_case.risk_assessment.drafted_by_ai is True
        assert result.artifacts.created_use_cases[0]["risk_assessment_id"] == use_case.risk_assessment.id

    def test_risk_failure_keeps_use_case(self, orchestrator, llm, make_context):
        llm.script("intent_classification", self._decision())
        llm.script("risk_assessment", LLMError("provider down"))
        result = orchestrator.orchestrate(make_context(), "Register it")

        assert result.success
        assert _count(AiUseCase) == 1
        assert _count(AiRiskAssessment) == 0
        assert result.artifacts.created_use_cases[0]["risk_assessment_id"] is None

    def test_missing_description_fails(self, orchestrator, llm, make_context):
        llm.script("intent_classification", self._decision(use_case_title="Only a title"))
        result = orchestrator.orchestrate(make_context(), "Register it")
        assert result.success is False
        assert _count(AiUseCase) == 0

    def test_draft_once(self, orchestrator, llm, make_context):
        llm.script("intent_classification", self._decision())
        llm.script("risk_assessment", RISK_DRAFT)
        orchestrator.orchestrate(make_context(), "Register it")
        use_case = db.session.scalars(select(AiUseCase)).one()
        assert orchestrator.governance.draft_risk_assessment(use_case) is None
        assert len(llm.calls_for("risk_assessment")) == 1


# ═════════════════════════════════════════════════════════════════════════
# Session summary
# ═════════════════════════════════════════════════════════════════════════


class TestSessionSummary:

    def test_summary_stored(self, orchestrator, llm, make_context, assistant_session):
        first = _extract(orchestrator, llm, make_context)
        llm.script("intent_classification", decision(
            "session_summary_request", ["generate_summary"], explanation="Here's a recap."))
        llm.script("session_summary", "  You mapped invoice processing.  ")
        result = orchestrator.orchestrate(make_context(first.updated_metadata), "Summarize")

        assert result.artifacts.updated_summary == "You mapped invoice processing."
        row = db.session.get(AssistantSession, assistant_session.id)
        assert row.context_summary == "You mapped invoice processing."
        digest = llm.calls_for("session_summary")[0]["messages"][-1]["content"]
        assert "- Invoice Processing: 3 steps, 0 opportunities" in digest

    def test_empty_summary_fails(self, orchestrator, llm, make_context):
        llm.script("intent_classification", decision(
            "session_summary_request", ["generate_summary"], explanation="Recap."))
        llm.script("session_summary", "   ")
        result = orchestrator.orchestrate(make_context(), "Summarize")
        assert result.success is False
