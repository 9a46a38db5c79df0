"""
Tool Blueprint — automation tool catalog and per-opportunity recommendations.

Endpoints:
    GET   /api/v1/tools                                     catalog (?category=)
    GET   /api/v1/opportunities/<id>/tools                  recommendations (generated on first read)
    POST  /api/v1/opportunities/<id>/tools                  re-rank and refresh recommendations
    PATCH /api/v1/opportunities/<id>/tools/<tool_id>        {user_selected: bool}
"""

import logging

from flask import Blueprint, jsonify, request

from app.services import tool_service
from app.services.session_service import get_gateway, get_prompt_registry

logger = logging.getLogger(__name__)

tool_bp = Blueprint("tools", __name__, url_prefix="/api/v1")


@tool_bp.route("/tools", methods=["GET"])
def list_tools():
    tools = tool_service.list_tools(request.args.get("category"))
    return jsonify([t.to_dict() for t in tools]), 200


@tool_bp.route("/opportunities/<opportunity_id>/tools", methods=["GET"])
def get_recommendations(opportunity_id):
    links = tool_service.get_or_recommend(opportunity_id, get_gateway(), get_prompt_registry())
    return jsonify({"tools": [link.to_dict() for link in links]}), 200


@tool_bp.route("/opportunities/<opportunity_id>/tools", methods=["POST"])
def refresh_recommendations(opportunity_id):
    links = tool_service.recommend_tools(opportunity_id, get_gateway(), get_prompt_registry())
    return jsonify({"tools": [link.to_dict() for link in links]}), 200


@tool_bp.route("/opportunities/<opportunity_id>/tools/<tool_id>", methods=["PATCH"])
def select_tool(opportunity_id, tool_id):
    data = request.get_json(silent=True) or {}
    link = tool_service.set_selection(opportunity_id, tool_id, data)
    return jsonify(link.to_dict()), 200
