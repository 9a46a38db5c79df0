"""
Similarity scoring, process identity resolution and step reconciliation
thresholds.

Threshold tests use stub scorers so the boundary is exercised exactly on
both sides.
"""

import pytest

from app.core.exceptions import ProcessResolutionError
from app.models import db
from app.models.process import Process, ProcessStep
from app.ai.schemas import StepSpec
from app.orchestration.actions.refine_process import ProcessRefiner
from app.orchestration.resolver import ProcessResolver
from app.orchestration.similarity import CONTAINMENT_SCORE, best_match, similarity
from app.orchestration.store import ArtifactStore
from app.orchestration.types import OrchestrationSettings


def _fixed(score):
    return lambda a, b: score


def _process(workspace, name, steps=()):
    project = ArtifactStore(db.session).ensure_project(workspace.id, None)
    p = Process(workspace_id=workspace.id, project_id=project.id, name=name)
    db.session.add(p)
    db.session.flush()
    for i, title in enumerate(steps):
        db.session.add(ProcessStep(process_id=p.id, title=title, position_x=i * 200))
    db.session.commit()
    return p


# ═════════════════════════════════════════════════════════════════════════
# similarity()
# ═════════════════════════════════════════════════════════════════════════


class TestSimilarity:

    def test_identical_ignoring_case_and_whitespace(self):
        assert similarity("  Invoice Processing ", "invoice processing") == 1.0

    def test_containment(self):
        assert similarity("Invoice", "Invoice Processing") == CONTAINMENT_SCORE
        assert similarity("Invoice Processing", "invoice") == CONTAINMENT_SCORE

    def test_empty_is_zero(self):
        assert similarity("", "Invoice") == 0.0
        assert similarity(None, "Invoice") == 0.0
        assert similarity("   ", "   ") == 0.0

    def test_edit_distance(self):
        # one substitution over four characters
        assert similarity("abcd", "abce") == pytest.approx(0.75)

    def test_unrelated_strings_score_low(self):
        assert similarity("Invoice Processing", "Employee Onboarding") < 0.6


class TestBestMatch:

    def test_threshold_is_exclusive(self):
        assert best_match("x", ["a"], key=str, threshold=0.6, scorer=_fixed(0.6)) is None

    def test_above_threshold_matches(self):
        assert best_match("x", ["a"], key=str, threshold=0.6, scorer=_fixed(0.61)) == ("a", 0.61)

    def test_ties_keep_earliest(self):
        match = best_match("x", ["first", "second"], key=str, threshold=0.5, scorer=_fixed(0.9))
        assert match[0] == "first"

    def test_highest_score_wins(self):
        scores = {"a": 0.7, "b": 0.9, "c": 0.8}
        match = best_match("x", ["a", "b", "c"], key=str, threshold=0.5,
                           scorer=lambda q, c: scores[c])
        assert match == ("b", 0.9)

    def test_no_candidates(self):
        assert best_match("x", [], key=str, threshold=0.0) is None


# ═════════════════════════════════════════════════════════════════════════
# Process resolution (0.6)
# ═════════════════════════════════════════════════════════════════════════


class TestProcessResolver:

    def _resolver(self, store, score):
        return ProcessResolver(store, OrchestrationSettings(), scorer=_fixed(score))

    def test_below_threshold_raises(self, store, workspace):
        _process(workspace, "Invoice Processing")
        with pytest.raises(ProcessResolutionError) as exc:
            self._resolver(store, 0.59).resolve(workspace.id, name="Something")
        assert exc.value.candidates == ["Invoice Processing"]

    def test_exact_threshold_rejected(self, store, workspace):
        _process(workspace, "Invoice Processing")
        with pytest.raises(ProcessResolutionError):
            self._resolver(store, 0.6).resolve(workspace.id, name="Something")

    def test_above_threshold_resolves(self, store, workspace):
        p = _process(workspace, "Invoice Processing")
        assert self._resolver(store, 0.61).resolve(workspace.id, name="Something").id == p.id

    def test_explicit_id_wins(self, store, workspace):
        _process(workspace, "Invoice Processing")
        target = _process(workspace, "Onboarding")
        resolved = self._resolver(store, 0.0).resolve(workspace.id, process_id=target.id)
        assert resolved.id == target.id

    def test_stale_id_falls_back_to_name(self, store, workspace):
        p = _process(workspace, "Invoice Processing")
        resolver = ProcessResolver(store, OrchestrationSettings())
        resolved = resolver.resolve(workspace.id, process_id="gone", name="invoice processing")
        assert resolved.id == p.id

    def test_falls_back_to_last_session_process(self, store, workspace):
        first = _process(workspace, "Invoice Processing")
        last = _process(workspace, "Vendor Onboarding")
        resolved = self._resolver(store, 0.1).resolve(
            workspace.id, name="zzz", session_process_ids=[first.id, last.id],
        )
        assert resolved.id == last.id

    def test_candidates_restricted_to_session(self, store, workspace):
        _process(workspace, "Invoice Processing")
        mine = _process(workspace, "Invoice Approval")
        resolver = ProcessResolver(store, OrchestrationSettings())
        assert [p.id for p in resolver.candidates(workspace.id, [mine.id])] == [mine.id]

    def test_other_workspace_is_invisible(self, store, workspace):
        from app.models.workspace import Workspace
        other = Workspace(name="Other")
        db.session.add(other)
        db.session.commit()
        foreign = _process(other, "Invoice Processing")
        resolver = ProcessResolver(store, OrchestrationSettings())
        with pytest.raises(ProcessResolutionError):
            resolver.resolve(workspace.id, process_id=foreign.id)

    def test_nothing_to_resolve(self, store, workspace):
        with pytest.raises(ProcessResolutionError) as exc:
            ProcessResolver(store, OrchestrationSettings()).resolve(workspace.id, name="x")
        assert exc.value.candidates == []


# ═════════════════════════════════════════════════════════════════════════
# Step matching (0.7)
# ═════════════════════════════════════════════════════════════════════════


class TestStepMatchThreshold:

    def _reconcile(self, store, workspace, score):
        process = _process(workspace, "Invoice Processing", ["Receive", "Enter"])
        settings = OrchestrationSettings()
        refiner = ProcessRefiner(store, ProcessResolver(store, settings), settings,
                                 scorer=_fixed(score))
        outcome = {"created_step_ids": [], "updated_step_ids": [], "deleted_step_ids": []}
        refiner.reconcile_steps(process, [StepSpec(title="A"), StepSpec(title="B")], outcome)
        db.session.commit()
        return outcome

    def test_below_threshold_replaces_steps(self, store, workspace):
        outcome = self._reconcile(store, workspace, 0.69)
        assert len(outcome["created_step_ids"]) == 2
        assert len(outcome["deleted_step_ids"]) == 2

    def test_exact_threshold_rejected(self, store, workspace):
        outcome = self._reconcile(store, workspace, 0.7)
        assert len(outcome["created_step_ids"]) == 2
        assert outcome["updated_step_ids"] == []

    def test_above_threshold_keeps_steps(self, store, workspace):
        outcome = self._reconcile(store, workspace, 0.71)
        assert outcome["created_step_ids"] == []
        assert outcome["deleted_step_ids"] == []
        assert len(outcome["updated_step_ids"]) == 2
