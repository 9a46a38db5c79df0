"""
Assistant Session Blueprint.

Endpoints:
    POST /api/v1/sessions                       create {workspace_id, title?, project_id?}
    GET  /api/v1/sessions/<id>                  session with metadata
    GET  /api/v1/sessions/<id>/messages         conversation history
    POST /api/v1/sessions/<id>/orchestrate      run one turn {message}
    GET  /api/v1/sessions/<id>/overview         artifact overview
    GET  /api/v1/sessions/<id>/next-step        next-step suggestion
"""

import logging

from flask import Blueprint, jsonify, request

from app.models import db
from app.orchestration.store import ArtifactStore
from app.services import session_service
from app.services.overview_service import build_overview
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

session_bp = Blueprint("sessions", __name__, url_prefix="/api/v1/sessions")


@session_bp.route("", methods=["POST"])
def create_session():
    data = request.get_json(silent=True) or {}
    session = session_service.create_session(data)
    return jsonify(session.to_dict()), 201


@session_bp.route("/<session_id>", methods=["GET"])
def get_session(session_id):
    return jsonify(session_service.get_session(session_id).to_dict()), 200


@session_bp.route("/<session_id>/messages", methods=["GET"])
def list_messages(session_id):
    return jsonify(session_service.list_messages(session_id)), 200


@session_bp.route("/<session_id>/orchestrate", methods=["POST"])
def orchestrate(session_id):
    data = request.get_json(silent=True) or {}
    message = data.get("message")
    if not isinstance(message, str) or not message.strip():
        return api_error(E.VALIDATION_REQUIRED, "message is required")

    result = session_service.run_turn(session_id, message)
    if not result.success:
        return api_error(
            E.LLM_FAILED, result.assistant_message,
            details={"error": result.error, "result": result.to_dict()},
        )
    return jsonify(result.to_dict()), 200


@session_bp.route("/<session_id>/overview", methods=["GET"])
def overview(session_id):
    session = session_service.get_session(session_id)
    data = build_overview(ArtifactStore(db.session), session.workspace_id, session.session_metadata)
    return jsonify(data), 200


@session_bp.route("/<session_id>/next-step", methods=["GET"])
def next_step(session_id):
    return jsonify({"next_step_suggestion": session_service.next_step(session_id)}), 200
