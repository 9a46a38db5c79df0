"""Session metadata merge, versioned commit and turn locks."""

import threading
import time

import pytest
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConflictError, NotFoundError
from app.models import db
from app.models.session import AssistantSession
from app.orchestration.metadata import MetadataStore, TurnLocks, merge_metadata


class TestMergeMetadata:

    def test_empty_inputs(self):
        assert merge_metadata(None, None) == {
            "project_id": None,
            "process_ids": [],
            "opportunity_ids": [],
            "blueprint_ids": [],
            "ai_use_case_ids": [],
        }

    def test_order_preserving_dedup(self):
        merged = merge_metadata({"process_ids": ["a", "b"]}, {"process_ids": ["b", "c", "a", "d"]})
        assert merged["process_ids"] == ["a", "b", "c", "d"]

    def test_project_keeps_first_value(self):
        assert merge_metadata({"project_id": "p1"}, {"project_id": "p2"})["project_id"] == "p1"
        assert merge_metadata({"project_id": None}, {"project_id": "p2"})["project_id"] == "p2"

    def test_never_shrinks(self):
        merged = merge_metadata({"blueprint_ids": ["b1"]}, {"blueprint_ids": []})
        assert merged["blueprint_ids"] == ["b1"]

    def test_falsy_ids_dropped(self):
        assert merge_metadata({}, {"opportunity_ids": ["o1", None, ""]})["opportunity_ids"] == ["o1"]


class TestMetadataStore:

    def test_commit_merges_and_bumps_version(self, assistant_session):
        before = assistant_session.version
        doc = MetadataStore(db.session).commit(assistant_session.id, {"process_ids": ["p1"]})
        assert doc["process_ids"] == ["p1"]
        row = db.session.get(AssistantSession, assistant_session.id)
        assert row.metadata_json["process_ids"] == ["p1"]
        assert row.version == before + 1

    def test_project_id_copied_to_row(self, assistant_session, workspace):
        from app.models.workspace import Project
        project = Project(workspace_id=workspace.id, name="Finance")
        db.session.add(project)
        db.session.commit()

        MetadataStore(db.session).commit(assistant_session.id, {"project_id": project.id})
        row = db.session.get(AssistantSession, assistant_session.id)
        assert row.project_id == project.id
        assert row.session_metadata["project_id"] == project.id

    def test_commit_accumulates(self, assistant_session):
        store = MetadataStore(db.session)
        store.commit(assistant_session.id, {"process_ids": ["p1"]})
        doc = store.commit(assistant_session.id, {"process_ids": ["p2", "p1"]})
        assert doc["process_ids"] == ["p1", "p2"]

    def test_missing_session(self):
        with pytest.raises(NotFoundError):
            MetadataStore(db.session).commit("missing", {})

    def test_stale_write_retries(self, assistant_session, monkeypatch):
        real_commit = db.session.commit
        attempts = {"n": 0}

        def flaky_commit():
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise StaleDataError("concurrent update")
            return real_commit()

        monkeypatch.setattr(db.session, "commit", flaky_commit)
        doc = MetadataStore(db.session, max_retries=3).commit(
            assistant_session.id, {"process_ids": ["p1"]},
        )
        assert attempts["n"] == 2
        assert doc["process_ids"] == ["p1"]

    def test_conflict_after_retries(self, assistant_session, monkeypatch):
        def always_stale():
            raise StaleDataError("concurrent update")

        session_id = assistant_session.id
        monkeypatch.setattr(db.session, "commit", always_stale)
        with pytest.raises(ConflictError) as exc:
            MetadataStore(db.session, max_retries=2).commit(session_id, {})
        assert exc.value.field == "version"
        assert str(exc.value) == f"AssistantSession {session_id!r} has a conflicting version"


class TestTurnLocks:

    def test_lock_is_dropped_after_turn(self):
        locks = TurnLocks()
        with locks.hold("s1"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_sessions_do_not_block_each_other(self):
        locks = TurnLocks()
        with locks.hold("s1"):
            with locks.hold("s2"):
                assert len(locks) == 2
        assert len(locks) == 0

    def test_same_session_is_serialized(self):
        locks = TurnLocks()
        order = []
        waiting = threading.Event()

        def second_turn():
            waiting.set()
            with locks.hold("s1"):
                order.append("second")

        with locks.hold("s1"):
            worker = threading.Thread(target=second_turn)
            worker.start()
            waiting.wait(timeout=5)
            time.sleep(0.05)
            order.append("first")
        worker.join(timeout=5)

        assert order == ["first", "second"]
        assert len(locks) == 0

    def test_lock_released_on_error(self):
        locks = TurnLocks()
        with pytest.raises(RuntimeError):
            with locks.hold("s1"):
                raise RuntimeError("turn failed")
        assert len(locks) == 0
        with locks.hold("s1"):
            pass
