"""
Process Mapping Studio
Blueprint registry and shared error handlers.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import ConflictError, LLMError, NotFoundError, ValidationError
from app.models import db
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def register_blueprints(app):
    from app.blueprints.artifact_bp import artifact_bp
    from app.blueprints.session_bp import session_bp
    from app.blueprints.tool_bp import tool_bp
    from app.blueprints.workspace_bp import workspace_bp

    app.register_blueprint(workspace_bp)
    app.register_blueprint(session_bp)
    app.register_blueprint(artifact_bp)
    app.register_blueprint(tool_bp)


def register_error_handlers(app):
    """Map domain exceptions raised by services to JSON error responses."""

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_STALE, str(error), details={"field": error.field})

    @app.errorhandler(LLMError)
    def _handle_llm(error: LLMError):
        logger.warning("LLM failure surfaced to client: %s", error)
        return api_error(E.LLM_FAILED, "The language model could not complete the request",
                         details={"error": str(error)})

    @app.errorhandler(SQLAlchemyError)
    def _handle_database(error: SQLAlchemyError):
        db.session.rollback()
        logger.error("Database error: %s", error, exc_info=True)
        return api_error(E.DATABASE, "Database error")
