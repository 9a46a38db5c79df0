"""Orchestration router: classification, gating, dispatch and metadata flow."""

import pytest

from app.ai.gateway import LLMGateway
from app.ai.schemas import Action
from app.core.exceptions import BudgetExceededError, LLMError
from app.orchestration.classifier import session_state_digest
from app.orchestration.gate import FALLBACK_QUESTION
from app.orchestration.router import _HANDLERS, GENERIC_FAILURE_MESSAGE

from conftest import INVOICE_DECISION, INVOICE_STEPS, decision


def _second_process_decision():
    return decision(
        "process_description", ["extract_process"], explanation="Mapped onboarding.",
        data={"process_name": "Vendor Onboarding",
              "steps": [{"title": "Collect tax form"}, {"title": "Create vendor record"}]},
    )


class TestDispatchTable:

    def test_every_action_has_a_handler(self):
        assert set(_HANDLERS) == set(Action)
        assert _HANDLERS[Action.RESPOND_ONLY] is None


class TestClassification:

    def test_classifier_error_fails_turn(self, orchestrator, llm, make_context):
        llm.script("intent_classification", LLMError("quota"))
        meta = {"process_ids": ["p1"]}
        result = orchestrator.orchestrate(make_context(meta), "hello")
        assert result.success is False
        assert result.assistant_message == GENERIC_FAILURE_MESSAGE
        assert result.updated_metadata["process_ids"] == ["p1"]
        assert "quota" in result.error

    def test_malformed_json_fails_turn(self, orchestrator, llm, make_context):
        llm.script("intent_classification", "I think you want a process map")
        result = orchestrator.orchestrate(make_context(), "hello")
        assert result.success is False

    def test_unknown_actions_are_ignored(self, orchestrator, llm, make_context):
        llm.script("intent_classification", decision(
            "general_question", ["make_coffee", "respond_only"], explanation="Happy to help."))
        result = orchestrator.orchestrate(make_context(), "hello")
        assert result.success
        assert result.assistant_message == "Happy to help."
        assert [a.action for a in result.actions] == ["respond_only"]

    def test_respond_only_writes_nothing(self, orchestrator, llm, make_context):
        llm.script("intent_classification", decision("general_question", ["respond_only"],
                                                     explanation="Processes are workflows."))
        result = orchestrator.orchestrate(make_context(), "What is a process?")
        assert result.success
        assert result.executed
        assert result.artifacts.to_dict() == {}
        assert result.next_step_suggestion.action_type == "describe_process"

    def test_classifier_call_settings(self, orchestrator, llm, make_context):
        llm.script("intent_classification", decision("general_question", ["respond_only"]))
        orchestrator.orchestrate(make_context(), "hello")
        call = llm.calls_for("intent_classification")[0]
        assert call["json_mode"] is True
        assert call["temperature"] == 0.7
        assert call["max_tokens"] == 2000

    def test_history_window_and_state_digest(self, orchestrator, llm, make_context):
        llm.script("intent_classification", decision("general_question", ["respond_only"]))
        history = [{"role": "user" if i % 2 == 0 else "assistant", "content": f"m{i}"}
                   for i in range(8)]
        orchestrator.orchestrate(make_context({"process_ids": ["p1"]}, history), "latest")

        messages = llm.calls_for("intent_classification")[0]["messages"]
        assert messages[0] == {"role": "system",
                               "content": "CURRENT SESSION STATE:\n- 1 process(es) created"}
        assert [m["content"] for m in messages[1:]] == ["m3", "m4", "m5", "m6", "m7", "latest"]

    def test_prompt_lists_existing_artifacts(self, orchestrator, llm, make_context):
        llm.script("intent_classification", INVOICE_DECISION)
        first = orchestrator.orchestrate(make_context(), "invoices")
        pid = first.updated_metadata["process_ids"][0]

        llm.script("intent_classification", decision("general_question", ["respond_only"]))
        orchestrator.orchestrate(make_context(first.updated_metadata), "hello")
        system = llm.calls_for("intent_classification")[-1]["system"]
        assert f'"Invoice Processing" (ID: {pid})' in system


class TestSessionStateDigest:

    def test_empty(self):
        assert session_state_digest({}) == ""

    def test_counts(self):
        digest = session_state_digest({"process_ids": ["a", "b"], "blueprint_ids": ["c"]})
        assert digest.splitlines() == [
            "CURRENT SESSION STATE:",
            "- 2 process(es) created",
            "- 1 blueprint(s) generated",
        ]


class TestClarification:

    def test_low_confidence_asks_and_writes_nothing(self, orchestrator, llm, make_context):
        llm.script("intent_classification", {**INVOICE_DECISION, "intent_confidence": 0.3})
        llm.script("clarification", "Which system do invoices arrive in?")
        result = orchestrator.orchestrate(make_context({"process_ids": ["p1"]}), "invoices?")

        assert result.success
        assert not result.executed
        assert result.clarification.reason == "low_intent_confidence"
        assert result.assistant_message == "Which system do invoices arrive in?"
        assert result.updated_metadata["process_ids"] == ["p1"]
        assert result.actions == []

    def test_clarifier_failure_uses_fallback(self, orchestrator, llm, make_context):
        llm.script("intent_classification", decision("clarification_needed", ["respond_only"]))
        llm.script("clarification", LLMError("down"))
        result = orchestrator.orchestrate(make_context(), "hmm")
        assert result.assistant_message == FALLBACK_QUESTION


class TestSequentialTurns:

    def test_metadata_accumulates_in_order(self, orchestrator, llm, make_context):
        llm.script("intent_classification", INVOICE_DECISION)
        first = orchestrator.orchestrate(make_context(), "invoices")
        llm.script("intent_classification", _second_process_decision())
        second = orchestrator.orchestrate(make_context(first.updated_metadata), "onboarding")

        first_ids = first.updated_metadata["process_ids"]
        created = [p["id"] for p in second.artifacts.created_processes]
        assert len(first_ids) == 1 and len(created) == 1
        assert second.updated_metadata["process_ids"] == first_ids + created
        assert second.updated_metadata["project_id"] == first.updated_metadata["project_id"]

    def test_failed_action_does_not_stop_later_ones(self, orchestrator, llm, make_context):
        llm.script("intent_classification", decision(
            "process_description", ["scan_opportunities", "extract_process"],
            data={"process_name": "Invoice Processing", "steps": INVOICE_STEPS},
        ))
        result = orchestrator.orchestrate(make_context(), "invoices")
        assert result.success
        assert [(a.action, a.status) for a in result.actions] == [
            ("scan_opportunities", "failed"), ("extract_process", "success"),
        ]
        assert len(result.updated_metadata["process_ids"]) == 1

    def test_result_serializes(self, orchestrator, llm, make_context):
        llm.script("intent_classification", INVOICE_DECISION)
        body = orchestrator.orchestrate(make_context(), "invoices").to_dict()
        assert body["success"] is True
        assert body["intent"] == "process_description"
        assert body["clarification"] is None
        assert body["next_step_suggestion"]["action_type"] == "scan_opportunities"
        assert "created_processes" in body["artifacts"]


# ═════════════════════════════════════════════════════════════════════════
# LLM gateway
# ═════════════════════════════════════════════════════════════════════════


class _Gate:
    def __init__(self, allowed):
        self.allowed = allowed
        self.checked = []

    def check_budget(self, workspace_id=None, purpose=""):
        self.checked.append((workspace_id, purpose))
        return {"allowed": self.allowed, "reason": "monthly cap reached"}


class TestGateway:

    def test_local_stub_without_keys(self, monkeypatch):
        for key in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GEMINI_API_KEY"):
            monkeypatch.delenv(key, raising=False)
        gw = LLMGateway(default_model="gpt-4o", max_retries=1)
        raw = gw.complete("sys", [{"role": "user", "content": "hi"}],
                          json_mode=True, purpose="intent_classification")
        assert '"respond_only"' in raw

    def test_budget_gate_blocks_before_provider(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        gate = _Gate(allowed=False)
        gw = LLMGateway(default_model="local-stub", max_retries=1, budget_gate=gate)
        with pytest.raises(BudgetExceededError):
            gw.complete("sys", [{"role": "user", "content": "hi"}],
                        purpose="session_summary", workspace_id="ws1")
        assert gate.checked == [("ws1", "session_summary")]

    def test_budget_gate_allows(self):
        gate = _Gate(allowed=True)
        gw = LLMGateway(default_model="local-stub", max_retries=1, budget_gate=gate)
        assert gw.complete("sys", [{"role": "user", "content": "hi"}], purpose="session_summary")

    def test_budget_error_is_llm_error(self):
        assert issubclass(BudgetExceededError, LLMError)
