"""
Opportunity Models

Opportunity (a scored automation candidate on a process step), Tool (catalog
entry) and OpportunityTool (tool recommendation / user selection per
opportunity).
"""

import uuid
from datetime import datetime, timezone

from app.models import db


__all__ = [
    "Opportunity",
    "Tool",
    "OpportunityTool",
    "OPPORTUNITY_TYPES",
    "LEVELS",
]


OPPORTUNITY_TYPES = {
    "document_processing",
    "data_entry",
    "communication",
    "analysis",
    "decision_support",
    "workflow_automation",
    "none",
}
LEVELS = {"low", "medium", "high"}


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Opportunity(db.Model):
    """
    Automation candidate attached to a process and, usually, one of its steps.

    At most one row per (process_id, step_id): scanning upserts. When the step
    is removed by a refinement the row is detached (step_id NULL) and stays a
    process-level opportunity.
    """

    __tablename__ = "opportunities"
    __table_args__ = (
        db.UniqueConstraint("process_id", "step_id", name="uq_opportunity_process_step"),
        db.Index("idx_opportunity_process", "process_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    process_id = db.Column(
        db.String(36), db.ForeignKey("processes.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_id = db.Column(
        db.String(36), db.ForeignKey("process_steps.id", ondelete="SET NULL"),
        nullable=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    opportunity_type = db.Column(
        db.String(40), nullable=False, default="workflow_automation",
        comment="document_processing | data_entry | communication | analysis | "
                "decision_support | workflow_automation",
    )
    impact_level = db.Column(db.String(10), nullable=False, default="medium")
    effort_level = db.Column(db.String(10), nullable=False, default="medium")
    impact_score = db.Column(db.Integer, nullable=False, default=0, comment="0-100")
    feasibility_score = db.Column(db.Integer, nullable=False, default=0, comment="0-100")
    rationale = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    step = db.relationship(
        "ProcessStep", backref=db.backref("opportunities", lazy="select"),
    )
    tools = db.relationship(
        "OpportunityTool", backref="opportunity", lazy="select",
        cascade="all, delete-orphan",
    )

    @property
    def selected_tools(self):
        return [ot.tool for ot in self.tools if ot.user_selected]

    def to_dict(self):
        return {
            "id": self.id,
            "process_id": self.process_id,
            "step_id": self.step_id,
            "title": self.title,
            "description": self.description,
            "opportunity_type": self.opportunity_type,
            "impact_level": self.impact_level,
            "effort_level": self.effort_level,
            "impact_score": self.impact_score,
            "feasibility_score": self.feasibility_score,
            "rationale": self.rationale,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Opportunity {self.id}: {self.title} ({self.impact_score})>"


class Tool(db.Model):
    """Catalog entry for an automation product."""

    __tablename__ = "tools"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False, unique=True)
    vendor = db.Column(db.String(200), nullable=True)
    category = db.Column(
        db.String(60), nullable=False, default="workflow_automation",
        comment="ocr | data_extraction | llm_agent | rpa | workflow_automation | integration",
    )
    description = db.Column(db.Text, nullable=True)
    use_cases = db.Column(db.JSON, nullable=False, default=list)
    pricing_tier = db.Column(db.String(20), nullable=False, default="paid",
                             comment="free | freemium | paid | enterprise")
    integration_complexity = db.Column(db.String(10), nullable=False, default="medium")
    security_notes = db.Column(db.Text, nullable=True)
    website_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "vendor": self.vendor,
            "category": self.category,
            "description": self.description,
            "use_cases": list(self.use_cases or []),
            "pricing_tier": self.pricing_tier,
            "integration_complexity": self.integration_complexity,
            "security_notes": self.security_notes,
            "website_url": self.website_url,
        }


class OpportunityTool(db.Model):
    """Tool recommended for an opportunity; ``user_selected`` marks the user's pick."""

    __tablename__ = "opportunity_tools"
    __table_args__ = (
        db.UniqueConstraint("opportunity_id", "tool_id", name="uq_opportunity_tool"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    opportunity_id = db.Column(
        db.String(36), db.ForeignKey("opportunities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    tool_id = db.Column(
        db.String(36), db.ForeignKey("tools.id", ondelete="CASCADE"),
        nullable=False,
    )
    match_score = db.Column(db.Integer, nullable=True, comment="0-100")
    rationale = db.Column(db.Text, nullable=True)
    user_selected = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    tool = db.relationship("Tool", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "opportunity_id": self.opportunity_id,
            "tool": self.tool.to_dict() if self.tool else None,
            "match_score": self.match_score,
            "rationale": self.rationale,
            "user_selected": bool(self.user_selected),
        }
