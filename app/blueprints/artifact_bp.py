"""
Artifact Blueprint — read access to what sessions produced.

Endpoints:
    GET /api/v1/processes/<id>              process with steps and links
    GET /api/v1/blueprints/<id>             blueprint with content
    GET /api/v1/blueprints/<id>/export      rendered markdown (text/markdown)
    GET /api/v1/ai-use-cases/<id>           use case with risk assessment
"""

import logging

from flask import Blueprint, Response, jsonify

from app.services import workspace_service

logger = logging.getLogger(__name__)

artifact_bp = Blueprint("artifacts", __name__, url_prefix="/api/v1")


@artifact_bp.route("/processes/<process_id>", methods=["GET"])
def get_process(process_id):
    process = workspace_service.get_process(process_id)
    return jsonify(process.to_dict(include_children=True)), 200


@artifact_bp.route("/blueprints/<blueprint_id>", methods=["GET"])
def get_blueprint(blueprint_id):
    blueprint = workspace_service.get_blueprint(blueprint_id)
    return jsonify(blueprint.to_dict(include_content=True)), 200


@artifact_bp.route("/blueprints/<blueprint_id>/export", methods=["GET"])
def export_blueprint(blueprint_id):
    blueprint = workspace_service.get_blueprint(blueprint_id)
    filename = f"blueprint-v{blueprint.version}.md"
    return Response(
        blueprint.rendered_markdown,
        mimetype="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@artifact_bp.route("/ai-use-cases/<use_case_id>", methods=["GET"])
def get_use_case(use_case_id):
    use_case = workspace_service.get_use_case(use_case_id)
    return jsonify(use_case.to_dict(include_risk=True)), 200
