"""
Classified scheduling failures.

Validators return results; the service layer raises the first failing
check as a SchedulingError. Store failures are not wrapped here and
propagate as ordinary database errors.
"""

import enum

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler


class ErrorKind(enum.Enum):
    NOT_FOUND = 'not_found'
    FORBIDDEN = 'forbidden'
    INVALID_TIMING = 'invalid_timing'
    INVALID_WEEKDAY = 'invalid_weekday'
    INVALID_SPAN = 'invalid_span'
    INVALID_STATUS = 'invalid_status'
    CONFLICT = 'conflict'
    GENERATION_MISMATCH = 'generation_mismatch'


HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID_TIMING: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_WEEKDAY: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_SPAN: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_STATUS: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.GENERATION_MISMATCH: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class SchedulingError(Exception):
    """A request or series operation was refused before anything was written."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def __repr__(self):
        return f"SchedulingError({self.kind.name}, {self.message!r})"


def scheduling_exception_handler(exc, context):
    """DRF exception handler that renders SchedulingError with its kind."""
    if isinstance(exc, SchedulingError):
        return Response(
            {'error': exc.message, 'kind': exc.kind.value},
            status=exc.http_status
        )
    return exception_handler(exc, context)
