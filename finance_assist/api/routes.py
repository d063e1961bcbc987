"""
API Routes for Finance Assist

Flask routes mapping document ingestion and question answering onto the
assist service, and translating failures into HTTP responses.
"""

import time
from typing import Optional

from flask import Blueprint, Response, jsonify, request
from pydantic import ValidationError
import structlog

from .models import ErrorResponse, IngestRequest, SearchQuery
from ..rag_engine import AssistService
from ..rag_engine.errors import AssistError, classify
from ..utils.helpers import preview_text, sanitize_header_value

logger = structlog.get_logger(__name__)

# Create blueprint for assist routes
assist_bp = Blueprint('assist', __name__, url_prefix='/finance/assist')

LEGACY_INGEST_STATUS = 404
LEGACY_SEARCH_STATUS = 504

# Assist service instance (initialized in app factory)
assist_service: Optional[AssistService] = None
precise_error_status = False


def init_routes(service: Optional[AssistService], precise_errors: bool = False):
    """Initialize routes with the assist service and error status policy."""
    global assist_service, precise_error_status
    assist_service = service
    precise_error_status = precise_errors


def _validation_error(message: str):
    body = ErrorResponse(
        error="Bad Request",
        error_type="validation_error",
        message=message,
        timestamp=int(time.time()),
    )
    return jsonify(body.model_dump()), 400


def _service_unavailable():
    body = ErrorResponse(
        error="Service Unavailable",
        error_type="service_unavailable",
        message="Assist service not available",
        timestamp=int(time.time()),
    )
    return jsonify(body.model_dump()), 503


def _failure_status(error: AssistError, legacy_status: int) -> int:
    return error.status_code if precise_error_status else legacy_status


@assist_bp.route('/save', methods=['POST'])
def ingest():
    """
    Ingest the documents behind a JSON array of URLs.

    Returns:
        200 with an empty body, or a failure status with the message in the
        ``error`` header
    """
    data = request.get_json(force=True, silent=True)
    try:
        urls = IngestRequest.model_validate(data).root
    except ValidationError as e:
        return _validation_error(f"Request body must be a JSON array of URL strings: {e.error_count()} error(s)")

    if assist_service is None:
        return _service_unavailable()

    try:
        assist_service.ingest(urls)
        return Response(status=200)
    except Exception as e:
        error = classify(e)
        status_code = _failure_status(error, LEGACY_INGEST_STATUS)
        logger.error("Document ingestion failed",
                     urls=len(urls),
                     source=error.source,
                     error_kind=error.kind,
                     status_code=status_code,
                     error=error.message)

        response = Response(status=status_code)
        response.headers['error'] = sanitize_header_value(error.message)
        response.headers['X-Error-Kind'] = error.kind
        return response


@assist_bp.route('/search', methods=['GET'])
def get_answer():
    """
    Answer a question from the ingested documents.

    Returns:
        200 with the answer as plain text, or a failure status with the
        message as the body
    """
    try:
        query = SearchQuery.model_validate(request.args.to_dict())
    except ValidationError:
        return _validation_error("Missing required query parameter 'question'")

    if assist_service is None:
        return _service_unavailable()

    try:
        answer = assist_service.get_answer(query.question)
        return Response(answer, status=200, mimetype='text/plain')
    except Exception as e:
        error = classify(e)
        status_code = _failure_status(error, LEGACY_SEARCH_STATUS)
        logger.error("Question answering failed",
                     question=preview_text(query.question),
                     error_kind=error.kind,
                     status_code=status_code,
                     error=error.message)

        response = Response(error.message, status=status_code, mimetype='text/plain')
        response.headers['X-Error-Kind'] = error.kind
        return response
