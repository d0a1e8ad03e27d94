from __future__ import annotations

from fastapi import HTTPException, status

from helpdesk.tickets.errors import (
    HelpdeskError,
    MembershipViolationError,
    NoMediatorAssignedError,
    NotFoundError,
    PersistenceFailureError,
)

_STATUS_CODES: tuple[tuple[type[HelpdeskError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PersistenceFailureError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (MembershipViolationError, 422),
    (NoMediatorAssignedError, 422),
)


def to_http_exception(exc: HelpdeskError) -> HTTPException:
    """Map a workflow error onto an HTTP error carrying its kind and field."""

    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.to_dict())
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_dict())
