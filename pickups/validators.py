"""
Pure checks applied to a candidate request date.

Each validator returns a ValidationResult instead of raising, so callers
decide how to report the first failure.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from django.utils import timezone

from .exceptions import ErrorKind, SchedulingError
from .recurrence import weekday_name, weekday_of
from .types import DEFAULT_CUTOFF_HOURS, DEFAULT_MAX_RECURRING_MONTHS


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls) -> 'ValidationResult':
        return cls(valid=True)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str) -> 'ValidationResult':
        return cls(valid=False, error=error, kind=kind)

    def raise_for_failure(self) -> None:
        """Raise the failure as a SchedulingError; no-op when valid."""
        if not self.valid:
            raise SchedulingError(self.kind, self.error)


def _local_naive(moment: datetime) -> datetime:
    if timezone.is_aware(moment):
        return timezone.localtime(moment).replace(tzinfo=None)
    return moment


def validate_timing(
    service_time: time,
    request_date: Optional[date],
    now: datetime,
    cutoff_hours: float = DEFAULT_CUTOFF_HOURS
) -> ValidationResult:
    """
    Fail when ``now`` is past the cutoff before the service starts.

    The service start is ``request_date`` at ``service_time`` in local
    time; ``now`` is converted to local time when it is timezone-aware.
    """
    if request_date is None:
        return ValidationResult.fail(ErrorKind.INVALID_TIMING, "Invalid request date")

    service_start = datetime.combine(request_date, service_time)
    cutoff = service_start - timedelta(hours=cutoff_hours)

    if _local_naive(now) > cutoff:
        hours = f"{cutoff_hours:g} hour" + ("" if cutoff_hours == 1 else "s")
        return ValidationResult.fail(
            ErrorKind.INVALID_TIMING,
            f"Cannot request pickup less than {hours} before service time"
        )

    return ValidationResult.ok()


def validate_weekday(expected_weekday: int, request_date: date) -> ValidationResult:
    """Fail when ``request_date`` does not fall on ``expected_weekday`` (0=Sunday)."""
    if weekday_of(request_date) != expected_weekday:
        return ValidationResult.fail(
            ErrorKind.INVALID_WEEKDAY,
            f"Request date should be a {weekday_name(expected_weekday)}"
        )
    return ValidationResult.ok()


def validate_span(
    end_date: Optional[date],
    request_date: date,
    is_recurring: bool,
    max_months: int = DEFAULT_MAX_RECURRING_MONTHS
) -> ValidationResult:
    """
    Check the end date of a recurring request.

    Recurring requests need an end date on or after the request date and
    no more than ``max_months`` calendar months after it. One-off requests
    always pass.
    """
    if not is_recurring:
        return ValidationResult.ok()

    if end_date is None:
        return ValidationResult.fail(
            ErrorKind.INVALID_SPAN,
            "End date is required for recurring requests"
        )

    if end_date < request_date:
        return ValidationResult.fail(
            ErrorKind.INVALID_SPAN,
            "End date must be on or after request date"
        )

    if end_date > request_date + relativedelta(months=max_months):
        return ValidationResult.fail(
            ErrorKind.INVALID_SPAN,
            f"Recurring period must not exceed {max_months} months"
        )

    return ValidationResult.ok()
