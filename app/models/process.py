"""
Process Graph Models

Process (a mapped workflow), ProcessStep (its ordered activities) and
ProcessLink (the sequential edges between consecutive steps).
"""

import uuid
from datetime import datetime, timezone

from app.models import db


__all__ = ["Process", "ProcessStep", "ProcessLink", "STEP_SPACING_X", "STEP_ROW_Y"]


# Canvas layout for a linear chain of steps
STEP_SPACING_X = 200
STEP_ROW_Y = 100


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Process(db.Model):
    """A mapped business workflow. Belongs to exactly one project."""

    __tablename__ = "processes"
    __table_args__ = (
        db.Index("idx_process_workspace_created", "workspace_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workspace_id = db.Column(
        db.String(36), db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    steps = db.relationship(
        "ProcessStep", backref="process", lazy="select",
        cascade="all, delete-orphan",
        order_by="ProcessStep.position_x",
    )
    links = db.relationship(
        "ProcessLink", backref="process", lazy="select",
        cascade="all, delete-orphan",
    )
    opportunities = db.relationship(
        "Opportunity", backref="process", lazy="select",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_children=False):
        d = {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "step_count": len(self.steps),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_children:
            d["steps"] = [s.to_dict() for s in self.steps]
            d["links"] = [ln.to_dict() for ln in self.links]
        return d

    def __repr__(self):
        return f"<Process {self.id}: {self.name}>"


class ProcessStep(db.Model):
    """One activity within a process, positioned on a left-to-right chain."""

    __tablename__ = "process_steps"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    process_id = db.Column(
        db.String(36), db.ForeignKey("processes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner = db.Column(db.String(200), nullable=True)
    frequency = db.Column(db.String(100), nullable=True)
    duration = db.Column(db.String(100), nullable=True)
    inputs = db.Column(db.JSON, default=list)
    outputs = db.Column(db.JSON, default=list)
    position_x = db.Column(db.Integer, nullable=False, default=0)
    position_y = db.Column(db.Integer, nullable=False, default=STEP_ROW_Y)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "process_id": self.process_id,
            "title": self.title,
            "description": self.description,
            "owner": self.owner,
            "frequency": self.frequency,
            "duration": self.duration,
            "inputs": self.inputs or [],
            "outputs": self.outputs or [],
            "position_x": self.position_x,
            "position_y": self.position_y,
        }

    def __repr__(self):
        return f"<ProcessStep {self.id}: {self.title}>"


class ProcessLink(db.Model):
    """Directed edge between two consecutive steps of the same process."""

    __tablename__ = "process_links"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    process_id = db.Column(
        db.String(36), db.ForeignKey("processes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    from_step_id = db.Column(
        db.String(36), db.ForeignKey("process_steps.id", ondelete="CASCADE"),
        nullable=False,
    )
    to_step_id = db.Column(
        db.String(36), db.ForeignKey("process_steps.id", ondelete="CASCADE"),
        nullable=False,
    )
    label = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "process_id": self.process_id,
            "from_step_id": self.from_step_id,
            "to_step_id": self.to_step_id,
            "label": self.label,
        }
