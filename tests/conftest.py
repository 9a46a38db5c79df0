"""
Shared pytest fixtures for the Process Mapping Studio test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - llm: Scripted fake LLM installed as the app's gateway
    - workspace / assistant_session: Pre-created rows
    - orchestrator: Orchestrator wired to the scripted LLM
"""

import json
import threading

import pytest

from app import create_app
from app.ai.prompt_registry import PromptRegistry
from app.core.exceptions import LLMError
from app.models import db as _db
from app.models.session import AssistantSession, empty_metadata
from app.models.workspace import Workspace
from app.orchestration import OrchestrationContext, OrchestrationSettings, Orchestrator
from app.orchestration.store import ArtifactStore


# ═════════════════════════════════════════════════════════════════════════
# Scripted LLM
# ═════════════════════════════════════════════════════════════════════════


class ScriptedLLM:
    """
    Deterministic stand-in for ``LLMGateway``.

    Responses are queued per ``purpose``; scripting a purpose again replaces
    its queue. A queue hands out its entries in order and keeps repeating the
    last one. An entry may be a string, a dict (sent as JSON), an exception
    instance (raised) or a callable receiving ``(system_prompt, messages)``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._scripts: dict[str, list] = {}
        self.calls: list[dict] = []

    def script(self, purpose, *responses):
        with self._lock:
            self._scripts[purpose] = list(responses)
        return self

    def calls_for(self, purpose):
        return [c for c in self.calls if c["purpose"] == purpose]

    def complete(self, system_prompt, messages, *, json_mode=False, temperature=0.3,
                 max_tokens=2000, purpose="", workspace_id=None, model=None):
        with self._lock:
            self.calls.append({
                "purpose": purpose,
                "system": system_prompt,
                "messages": list(messages),
                "json_mode": json_mode,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "workspace_id": workspace_id,
            })
            queue = self._scripts.get(purpose)
            if not queue:
                raise LLMError(f"No scripted response for purpose {purpose!r}")
            entry = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            entry = entry(system_prompt, messages)
        if isinstance(entry, (dict, list)):
            return json.dumps(entry)
        return entry


def decision(intent, actions, explanation="Done.", **extra):
    """Classifier payload with sensible defaults."""
    payload = {
        "intent": intent,
        "actions": actions,
        "explanation": explanation,
        "intent_confidence": 0.9,
        "target_ids": {},
        "data": {},
    }
    payload.update(extra)
    return payload


def analysis(title="Automate step", impact_score=70, **extra):
    payload = {
        "title": title,
        "opportunity_type": "data_entry",
        "impact_level": "high",
        "effort_level": "low",
        "impact_score": impact_score,
        "feasibility_score": 80,
        "rationale": "Manual and repetitive.",
    }
    payload.update(extra)
    return payload


INVOICE_STEPS = [
    {"title": "Receive invoice by email", "owner": "AP clerk", "frequency": "daily"},
    {"title": "Enter invoice into ERP", "owner": "AP clerk", "duration": "10 minutes"},
    {"title": "Approve payment", "owner": "Finance manager"},
]

INVOICE_DECISION = decision(
    "process_description", ["extract_process"],
    explanation="I've mapped your invoice process.",
    extraction_confidence=0.9,
    data={"process_name": "Invoice Processing", "steps": INVOICE_STEPS},
)

BLUEPRINT_CONTENT = {
    "title": "Invoice Automation Blueprint",
    "executive_summary": "Automate invoice intake and entry.",
    "current_state": "Invoices are keyed in by hand.",
    "target_state": "Invoices are captured and posted automatically.",
    "opportunities": [{"title": "Invoice capture", "summary": "OCR intake",
                       "selected_tools": ["DocParser"]}],
    "phases": [{"name": "Pilot", "duration": "4 weeks",
                "objectives": ["Prove capture accuracy"], "activities": ["Configure OCR"],
                "tools": ["DocParser"], "dependencies": [], "deliverables": ["Pilot report"]}],
    "risks": [{"name": "Low OCR accuracy", "mitigation": "Human review queue"}],
    "kpis": [{"name": "Cycle time", "baseline": "5 days", "target": "1 day"}],
}

RISK_DRAFT = {
    "risk_level": "Medium",
    "impact_areas": ["finance"],
    "data_sensitivity": "confidential",
    "regulatory_relevance": ["SOX"],
    "summary_text": "Moderate financial risk.",
    "risks": [{"title": "Misposting", "description": "Wrong GL", "mitigation": "Review"}],
    "assumptions": ["Human approval stays in the loop"],
}


# ═════════════════════════════════════════════════════════════════════════
# App & DB fixtures
# ═════════════════════════════════════════════════════════════════════════


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def llm(app):
    """Scripted LLM installed as the app-wide gateway for the test."""
    fake = ScriptedLLM()
    app._llm_gateway = fake
    yield fake
    del app._llm_gateway


# ═════════════════════════════════════════════════════════════════════════
# Convenience fixtures
# ═════════════════════════════════════════════════════════════════════════


@pytest.fixture()
def workspace():
    ws = Workspace(name="Acme Finance")
    _db.session.add(ws)
    _db.session.commit()
    return ws


@pytest.fixture()
def assistant_session(workspace):
    row = AssistantSession(workspace_id=workspace.id, title="New session",
                           metadata_json=empty_metadata())
    _db.session.add(row)
    _db.session.commit()
    return row


@pytest.fixture()
def store():
    return ArtifactStore(_db.session)


@pytest.fixture()
def settings():
    return OrchestrationSettings(scan_workers=2)


@pytest.fixture()
def orchestrator(store, llm, settings):
    return Orchestrator(store, llm, PromptRegistry(), settings)


@pytest.fixture()
def make_context(workspace, assistant_session):
    """Build an OrchestrationContext for the fixture session."""
    def _make(metadata=None, history=None):
        return OrchestrationContext(
            workspace_id=workspace.id,
            session_id=assistant_session.id,
            current_metadata=metadata or {},
            conversation_history=history or [],
        )
    return _make
