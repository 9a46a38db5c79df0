"""
Blueprint Model

A generated, versioned implementation plan. Rows are immutable once written;
regenerating creates the next version for the project.
"""

import uuid
from datetime import datetime, timezone

from app.models import db


__all__ = ["Blueprint"]


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Blueprint(db.Model):
    """Structured blueprint content plus its deterministic markdown rendering."""

    __tablename__ = "blueprints"
    __table_args__ = (
        db.UniqueConstraint("project_id", "version", name="uq_blueprint_project_version"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workspace_id = db.Column(
        db.String(36), db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    title = db.Column(db.String(300), nullable=False)
    content_json = db.Column(db.JSON, nullable=False)
    rendered_markdown = db.Column(db.Text, nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1)
    metadata_json = db.Column(
        db.JSON, default=dict,
        comment="process_count, opportunity_count, selected_tool_count",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self, include_content=False):
        d = {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "project_id": self.project_id,
            "title": self.title,
            "version": self.version,
            "metadata": self.metadata_json or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_content:
            d["content"] = self.content_json
            d["rendered_markdown"] = self.rendered_markdown
        return d

    def __repr__(self):
        return f"<Blueprint {self.id}: {self.title} v{self.version}>"
