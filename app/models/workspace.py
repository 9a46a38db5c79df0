"""
Workspace & Project Models

Workspace is the tenant boundary that owns projects, processes and sessions.
Project groups the processes, blueprints and AI use cases of one engagement.
"""

import uuid
from datetime import datetime, timezone

from app.models import db


__all__ = ["Workspace", "Project"]


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Workspace(db.Model):
    """Top-level tenant boundary."""

    __tablename__ = "workspaces"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    projects = db.relationship(
        "Project", backref="workspace", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Workspace {self.id}: {self.name}>"


class Project(db.Model):
    """
    Engagement container inside a workspace.

    Sessions that start without a project get a default one on their first
    process extraction (``is_default=True``).
    """

    __tablename__ = "projects"
    __table_args__ = (
        db.Index("idx_project_workspace", "workspace_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workspace_id = db.Column(
        db.String(36), db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    processes = db.relationship(
        "Process", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "description": self.description,
            "is_default": bool(self.is_default),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"
