"""
AI Governance Models

AiUseCase registers an AI deployment for governance tracking; AiRiskAssessment
is its (at most one) drafted risk & impact profile.
"""

import uuid
from datetime import datetime, timezone

from app.models import db


__all__ = ["AiUseCase", "AiRiskAssessment", "RISK_LEVELS"]


RISK_LEVELS = {"low", "medium", "high", "critical"}


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class AiUseCase(db.Model):
    """Governance record for a proposed AI deployment."""

    __tablename__ = "ai_use_cases"
    __table_args__ = (
        db.Index("idx_use_case_workspace", "workspace_id", "created_at"),
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
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | in_review | approved | retired",
    )
    source = db.Column(db.String(40), nullable=False, default="assistant_session")
    linked_process_ids = db.Column(db.JSON, default=list)
    linked_opportunity_ids = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    risk_assessment = db.relationship(
        "AiRiskAssessment", backref="ai_use_case", uselist=False,
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_risk=False):
        d = {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "source": self.source,
            "linked_process_ids": self.linked_process_ids or [],
            "linked_opportunity_ids": self.linked_opportunity_ids or [],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_risk:
            d["risk_assessment"] = (
                self.risk_assessment.to_dict() if self.risk_assessment else None
            )
        return d

    def __repr__(self):
        return f"<AiUseCase {self.id}: {self.title}>"


class AiRiskAssessment(db.Model):
    """Structured risk profile; one per use case."""

    __tablename__ = "ai_risk_assessments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    ai_use_case_id = db.Column(
        db.String(36), db.ForeignKey("ai_use_cases.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    risk_level = db.Column(db.String(20), nullable=False, default="medium")
    impact_areas = db.Column(db.JSON, default=list)
    data_sensitivity = db.Column(db.String(20), nullable=True)
    regulatory_relevance = db.Column(db.JSON, default=list)
    summary_text = db.Column(db.Text, nullable=True)
    risks_json = db.Column(db.JSON, default=list, comment="[{title, description, mitigation}]")
    assumptions_json = db.Column(db.JSON, default=list)
    residual_risk_text = db.Column(db.Text, nullable=True)
    drafted_by_ai = db.Column(db.Boolean, nullable=False, default=False)
    last_drafted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "ai_use_case_id": self.ai_use_case_id,
            "risk_level": self.risk_level,
            "impact_areas": self.impact_areas or [],
            "data_sensitivity": self.data_sensitivity,
            "regulatory_relevance": self.regulatory_relevance or [],
            "summary_text": self.summary_text,
            "risks": self.risks_json or [],
            "assumptions": self.assumptions_json or [],
            "residual_risk_text": self.residual_risk_text,
            "drafted_by_ai": bool(self.drafted_by_ai),
            "last_drafted_at": self.last_drafted_at.isoformat() if self.last_drafted_at else None,
        }
