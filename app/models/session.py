"""
Assistant Session Models

AssistantSession holds the per-session metadata document that accumulates the
ids of every artifact the conversation produced. SessionMessage is the
persisted conversation history.
"""

import uuid
from datetime import datetime, timezone

from app.models import db


__all__ = ["AssistantSession", "SessionMessage", "METADATA_LIST_KEYS", "empty_metadata"]


METADATA_LIST_KEYS = ("process_ids", "opportunity_ids", "blueprint_ids", "ai_use_case_ids")


def empty_metadata() -> dict:
    return {"project_id": None, **{key: [] for key in METADATA_LIST_KEYS}}


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class AssistantSession(db.Model):
    """
    One conversational workspace session.

    ``version`` is SQLAlchemy's optimistic-concurrency stamp: every UPDATE
    checks the stamp it read and raises ``StaleDataError`` when another writer
    got there first.
    """

    __tablename__ = "assistant_sessions"
    __table_args__ = (
        db.Index("idx_session_workspace", "workspace_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workspace_id = db.Column(
        db.String(36), db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
    )
    title = db.Column(db.String(200), nullable=False, default="New session")
    context_summary = db.Column(db.Text, nullable=True)
    metadata_json = db.Column(db.JSON, nullable=False, default=empty_metadata)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    messages = db.relationship(
        "SessionMessage", backref="session", lazy="dynamic",
        cascade="all, delete-orphan", order_by="SessionMessage.id",
    )

    @property
    def session_metadata(self) -> dict:
        """Metadata document with every list key present."""
        doc = empty_metadata()
        doc.update(self.metadata_json or {})
        return doc

    def to_dict(self):
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "project_id": self.project_id,
            "title": self.title,
            "context_summary": self.context_summary,
            "metadata": self.session_metadata,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<AssistantSession {self.id}: {self.title}>"


class SessionMessage(db.Model):
    """A single user or assistant message within a session."""

    __tablename__ = "session_messages"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(
        db.String(36), db.ForeignKey("assistant_sessions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    role = db.Column(db.String(20), nullable=False, comment="user | assistant")
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
