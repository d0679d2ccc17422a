# Overview: Maps service-layer business errors onto JSON error responses.

from flask import jsonify

from ..services.errors import (
    CashCustodyError,
    DuplicateSettlement,
    InvalidReadingSet,
    InvalidState,
    NotFound,
    NotRecipient,
    SequenceViolation,
    UnresolvedRecipient,
)


STATUS_BY_ERROR = (
    (NotFound, 404),
    (NotRecipient, 403),
    (SequenceViolation, 409),
    (InvalidState, 409),
    (DuplicateSettlement, 409),
    (UnresolvedRecipient, 422),
    (InvalidReadingSet, 422),
)


def business_error_response(exc: CashCustodyError):
    """Expected workflow feedback; never logged as a fault."""
    status = 400
    for error_cls, code in STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            status = code
            break

    body = {"error": str(exc), "code": type(exc).__name__}
    if isinstance(exc, SequenceViolation) and exc.required_stage is not None:
        body["required_stage"] = exc.required_stage.value
    if isinstance(exc, InvalidState) and exc.current_status:
        body["current_status"] = exc.current_status
    if isinstance(exc, InvalidReadingSet):
        body["reading_ids"] = exc.reading_ids
    return jsonify(body), status
