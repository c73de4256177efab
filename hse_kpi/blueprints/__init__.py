"""
HSE KPI Tracker
Blueprint registry and shared request helpers.
"""

import logging

from flask import request
from sqlalchemy.exc import SQLAlchemyError

from hse_kpi.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from hse_kpi.models import db
from hse_kpi.utils.errors import E, api_error

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def actor() -> str:
    """Acting user id from the ``X-User-Id`` header (opaque, defaults to "system")."""
    return (request.headers.get("X-User-Id") or "").strip() or "system"


def int_arg(name, default=None):
    """Integer query-string argument; None/default when absent or malformed."""
    try:
        return int(request.args[name])
    except (KeyError, TypeError, ValueError):
        return default


def register_error_handlers(bp):
    """Map the service exception hierarchy to JSON error responses on ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        db.session.rollback()
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(VersionConflictError)
    def _handle_version_conflict(error: VersionConflictError):
        return api_error(
            E.CONFLICT_VERSION,
            str(error),
            details={
                "expected_version": error.expected_version,
                "current_version": error.current_version,
            },
        )

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @bp.errorhandler(SQLAlchemyError)
    def _handle_database(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.DATABASE, "Database error")

    return bp
