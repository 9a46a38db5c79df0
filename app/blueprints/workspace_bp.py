"""
Workspace Blueprint.

Endpoints:
    POST /api/v1/workspaces                     create
    GET  /api/v1/workspaces                     list
    GET  /api/v1/workspaces/<id>/processes      processes in a workspace
"""

import logging

from flask import Blueprint, jsonify, request

from app.services import workspace_service

logger = logging.getLogger(__name__)

workspace_bp = Blueprint("workspaces", __name__, url_prefix="/api/v1/workspaces")


@workspace_bp.route("", methods=["POST"])
def create_workspace():
    data = request.get_json(silent=True) or {}
    workspace = workspace_service.create_workspace(data)
    return jsonify(workspace.to_dict()), 201


@workspace_bp.route("", methods=["GET"])
def list_workspaces():
    return jsonify([w.to_dict() for w in workspace_service.list_workspaces()]), 200


@workspace_bp.route("/<workspace_id>/processes", methods=["GET"])
def list_processes(workspace_id):
    processes = workspace_service.list_processes(workspace_id)
    return jsonify([p.to_dict() for p in processes]), 200
