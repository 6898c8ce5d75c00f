# Overview: Maps ingestion pipeline exceptions onto HTTP status codes and JSON bodies.

from flask import current_app, jsonify

from ..services.concurrency import DeadlineExceeded, PersistenceError
from ..services.gloriafood_client import RemoteFetchError
from ..services.ingestion_gateway import AuthenticationError
from ..services.menu_sync_service import MenuSyncInProgressError
from ..validation import ValidationError

# Most specific first
ERROR_STATUS = (
    (AuthenticationError, 401),
    (ValidationError, 400),
    (MenuSyncInProgressError, 409),
    (RemoteFetchError, 502),
    (DeadlineExceeded, 504),
    (PersistenceError, 500),
)


def status_for(exc: Exception) -> int:
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


def ingestion_error_response(exc: Exception, what: str):
    status = status_for(exc)
    if status >= 500:
        current_app.logger.exception("%s failed", what)
    else:
        current_app.logger.warning("%s rejected: %s", what, exc)

    body = {"success": False, "error": str(exc) or exc.__class__.__name__}
    details = getattr(exc, "details", None)
    if details:
        body["details"] = details
    return jsonify(body), status
