"""
Service layer for pickup scheduling business logic.

Every operation runs in one transaction: a refused operation raises
SchedulingError and nothing it touched is written.
"""

import logging
import math
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import RestrictedError
from django.utils import timezone

from .exceptions import ErrorKind, SchedulingError
from .models import (
    Address,
    PickupRequest,
    PickupSeries,
    ServiceDefinition,
    ServiceWeekday,
)
from .recurrence import (
    DayGranular,
    Next,
    RecurrenceRule,
    generate,
    generate_through,
    next_occurrence,
    weekday_name,
)
from .tracking import request_event_type, track_event
from .types import (
    DEFAULT_CANCEL_CUTOFF_HOURS,
    DEFAULT_CUTOFF_HOURS,
    DEFAULT_MAX_RECURRING_MONTHS,
    DEFAULT_RESTORE_COOLDOWN_HOURS,
    RequestData,
    ServiceData,
    ServiceUpdateData,
)
from .validators import ValidationResult, validate_span, validate_timing, validate_weekday


logger = logging.getLogger(__name__)

SERIES_DETAIL_FIELDS = [
    'address',
    'is_pick_up',
    'is_drop_off',
    'is_group_ride',
    'number_of_group',
    'notes',
]


def _setting(name, default):
    return getattr(settings, name, default)


def _reject(kind: ErrorKind, message: str) -> SchedulingError:
    logger.info("Rejected pickup operation (%s): %s", kind.value, message)
    return SchedulingError(kind, message)


def _check(result: ValidationResult) -> None:
    if not result.valid:
        raise _reject(result.kind, result.error)


@contextmanager
def _duplicate_guard():
    """
    Run writes in a savepoint and report a unique-key violation as CONFLICT.

    The explicit duplicate checks run first; this catches a concurrent
    writer that took the same (user, service, date) slot in between.
    """
    try:
        with transaction.atomic():
            yield
    except IntegrityError:
        raise _reject(
            ErrorKind.CONFLICT,
            "You already have a pickup request for this service on one of these dates"
        ) from None


# Requests

@transaction.atomic
def create_request(actor, data: RequestData, now: Optional[datetime] = None) -> List[PickupRequest]:
    """
    Create a one-off request or a recurring series.

    Args:
        actor: User submitting the request (staff may submit for another user)
        data: RequestData describing the booking
        now: Evaluation instant for the timing cutoff (defaults to now)

    Returns:
        Created PickupRequest instances ordered by date

    Raises:
        SchedulingError: If any existence, duplicate or validation check fails
    """
    now = now or timezone.now()
    user_id = _resolve_target_user_id(actor, data.user_id)
    service = _get_active_service(data.service_id)
    service_weekday = _get_service_weekday(service, data.day_of_week)
    _get_address(data.address_id, user_id)
    _ensure_no_duplicates(user_id, service.pk, [data.request_date])

    _check_timing_and_weekday(service, data.day_of_week, data.request_date, now)
    _check(validate_span(
        data.end_date,
        data.request_date,
        data.is_recurring,
        _setting('PICKUP_MAX_RECURRING_MONTHS', DEFAULT_MAX_RECURRING_MONTHS)
    ))

    if not data.is_recurring:
        with _duplicate_guard():
            pickup_request = PickupRequest.objects.create(
                user_id=user_id,
                service=service,
                service_weekday=service_weekday,
                request_date=data.request_date,
                status='PENDING',
                **data.detail_fields()
            )
        created = [pickup_request]
        series_id = None
    else:
        dates = generate_through(_weekly_rule(data.day_of_week), data.request_date, data.end_date)
        if not dates:
            raise _reject(
                ErrorKind.INVALID_SPAN,
                "No service dates fall between the request date and end date"
            )
        _ensure_no_duplicates(user_id, service.pk, dates)

        with _duplicate_guard():
            series = PickupSeries.objects.create()
            PickupRequest.objects.bulk_create([
                PickupRequest(
                    user_id=user_id,
                    service=service,
                    service_weekday=service_weekday,
                    series=series,
                    request_date=request_date,
                    status='PENDING',
                    **data.detail_fields()
                )
                for request_date in dates
            ])
        created = list(PickupRequest.objects.for_series(series.pk).order_by('request_date'))
        series_id = series.pk

    logger.info(
        "Created %d pickup request(s) for user %s on service %s",
        len(created), user_id, service.pk
    )
    track_event(
        request_event_type('created', data.is_recurring, user_id != actor.pk),
        user_id,
        _event_metadata(actor, user_id, service, data, created, series_id)
    )
    return created


@transaction.atomic
def update_request(
    actor,
    request_id: int,
    data: RequestData,
    update_series: bool = False,
    now: Optional[datetime] = None
) -> List[PickupRequest]:
    """
    Update one occurrence, or it and every later occurrence of its series.

    Args:
        actor: User performing the update
        request_id: id of the occurrence being edited
        data: RequestData with the new values
        update_series: Apply the change to the rest of the series
        now: Evaluation instant for the timing cutoff (defaults to now)

    Returns:
        The updated PickupRequest instances ordered by date

    Raises:
        SchedulingError: If the request is missing or not owned, or any check fails
    """
    now = now or timezone.now()
    existing = PickupRequest.objects.filter(pk=request_id).first()
    if existing is None:
        raise _reject(ErrorKind.NOT_FOUND, "The Pickup Request does not exist")

    if not actor.is_staff and existing.user_id != actor.pk:
        raise _reject(ErrorKind.FORBIDDEN, "Unauthorized")

    user_id = existing.user_id
    service = _get_active_service(data.service_id)
    service_weekday = _get_service_weekday(service, data.day_of_week)
    _get_address(data.address_id, user_id)
    _check_timing_and_weekday(service, data.day_of_week, data.request_date, now)

    if not update_series:
        updated = [_update_single_request(existing, service, service_weekday, data)]
    else:
        if existing.series_id is None:
            raise _reject(ErrorKind.NOT_FOUND, "This request is not part of a series")

        anchor_unchanged = (
            existing.service_id == service.pk
            and existing.request_date == data.request_date
        )
        if anchor_unchanged:
            updated = _update_series_details(existing, data)
        else:
            updated = _shift_series(existing, service, service_weekday, data)

    logger.info(
        "Updated %d pickup request(s) starting from request %s",
        len(updated), existing.pk
    )
    track_event(
        request_event_type('updated', update_series, user_id != actor.pk),
        user_id,
        _event_metadata(
            actor, user_id, service, data, updated,
            existing.series_id if update_series else None
        )
    )
    return updated


def _update_single_request(
    existing: PickupRequest,
    service: ServiceDefinition,
    service_weekday: ServiceWeekday,
    data: RequestData
) -> PickupRequest:
    """Move one occurrence in place; its series membership is left as is."""
    _ensure_no_duplicates(
        existing.user_id, service.pk, [data.request_date], exclude_ids=[existing.pk]
    )

    existing.service = service
    existing.service_weekday = service_weekday
    existing.request_date = data.request_date
    _apply_field_updates(existing, data.detail_fields(), allow_none=True)
    with _duplicate_guard():
        existing.save()
    return existing


def _update_series_details(existing: PickupRequest, data: RequestData) -> List[PickupRequest]:
    """Copy non-date fields onto this and every later occurrence; dates stay put."""
    rows = PickupRequest.objects.for_series(existing.series_id).from_date(existing.request_date)
    rows.update(updated_at=timezone.now(), **data.detail_fields())
    return list(rows.order_by('request_date', 'id'))


def _shift_series(
    existing: PickupRequest,
    service: ServiceDefinition,
    service_weekday: ServiceWeekday,
    data: RequestData
) -> List[PickupRequest]:
    """
    Re-anchor this and every later occurrence at the new date.

    All replacement dates are computed and checked before any row changes,
    so a single conflict leaves the whole series untouched.
    """
    rows = list(
        PickupRequest.objects.select_for_update()
        .for_series(existing.series_id)
        .from_date(existing.request_date)
        .order_by('request_date', 'id')
    )

    new_dates = generate(_weekly_rule(data.day_of_week), data.request_date, len(rows))
    if len(new_dates) != len(rows):
        raise _reject(
            ErrorKind.GENERATION_MISMATCH,
            "Error updating service date for the series"
        )

    _ensure_no_duplicates(
        existing.user_id, service.pk, new_dates, exclude_ids=[row.pk for row in rows]
    )

    staged = list(zip(rows, new_dates))
    updated_at = timezone.now()
    for row, new_date in staged:
        row.service = service
        row.service_weekday = service_weekday
        row.request_date = new_date
        row.updated_at = updated_at
        _apply_field_updates(row, data.detail_fields(), allow_none=True)

    with _duplicate_guard():
        # Rows may take over dates their siblings are leaving; park the batch
        # outside the active-slot constraint, then restore each row's status.
        PickupRequest.objects.filter(pk__in=[row.pk for row in rows]).update(status='CANCELLED')
        PickupRequest.objects.bulk_update(
            rows,
            ['service', 'service_weekday', 'request_date', 'status', 'updated_at'] + SERIES_DETAIL_FIELDS
        )
    return rows


@transaction.atomic
def cancel_request(
    actor,
    request_id: int,
    reason: str,
    now: Optional[datetime] = None
) -> PickupRequest:
    """
    Cancel a pickup request.

    Args:
        actor: User cancelling (owners cancel their own, staff any)
        request_id: id of the request
        reason: Why the request is cancelled; appended to the notes
        now: Evaluation instant for the cancellation cutoff

    Returns:
        Updated PickupRequest instance

    Raises:
        SchedulingError: If the request cannot be cancelled
    """
    now = now or timezone.now()
    if not reason or not reason.strip():
        raise _reject(ErrorKind.INVALID_STATUS, "Cancellation reason is required")

    queryset = PickupRequest.objects.select_for_update().select_related('service')
    if not actor.is_staff:
        queryset = queryset.filter(user=actor)
    pickup_request = queryset.filter(pk=request_id).first()
    if pickup_request is None:
        raise _reject(ErrorKind.NOT_FOUND, "Pickup request not found or not authorized")

    if pickup_request.status == 'COMPLETED':
        raise _reject(ErrorKind.INVALID_STATUS, "Cannot cancel completed requests")

    if pickup_request.status == 'CANCELLED':
        raise _reject(ErrorKind.INVALID_STATUS, "Request is already cancelled")

    cutoff_hours = _setting('PICKUP_CANCEL_CUTOFF_HOURS', DEFAULT_CANCEL_CUTOFF_HOURS)
    if pickup_request.status == 'ACCEPTED':
        timing = validate_timing(
            pickup_request.service.time, pickup_request.request_date, now, cutoff_hours
        )
        if not timing.valid:
            raise _reject(
                ErrorKind.INVALID_TIMING,
                f"Cannot cancel accepted requests less than {cutoff_hours} hours before service time"
            )

    reason = reason.strip()
    prefix = f"{pickup_request.notes}\n\n" if pickup_request.notes else ""
    pickup_request.notes = f"{prefix}CANCELLED: {reason}"
    pickup_request.status = 'CANCELLED'
    pickup_request.driver = None
    pickup_request.save()

    track_event(
        request_event_type('cancelled', False, pickup_request.user_id != actor.pk),
        pickup_request.user_id,
        {'requestId': pickup_request.pk, 'reason': reason, 'cancelledBy': actor.pk}
    )
    return pickup_request


@transaction.atomic
def update_request_status(actor, request_id: int, status: str) -> PickupRequest:
    """
    Move a request to PENDING, ACCEPTED or COMPLETED.

    A staff member accepting someone else's request becomes its driver.
    Cancellation goes through cancel_request.

    Raises:
        SchedulingError: If the request is missing, not owned, or the move is invalid
    """
    if status not in ('PENDING', 'ACCEPTED', 'COMPLETED'):
        raise _reject(ErrorKind.INVALID_STATUS, f"Unsupported status: {status}")

    pickup_request = PickupRequest.objects.select_for_update().filter(pk=request_id).first()
    if pickup_request is None:
        raise _reject(ErrorKind.NOT_FOUND, "Request not found")

    if not actor.is_staff and pickup_request.user_id != actor.pk:
        raise _reject(ErrorKind.FORBIDDEN, "Unauthorized")

    if pickup_request.status in ('CANCELLED', 'COMPLETED'):
        raise _reject(
            ErrorKind.INVALID_STATUS,
            f"Cannot change the status of a {pickup_request.status.lower()} request"
        )

    if status == 'ACCEPTED' and actor.is_staff and pickup_request.user_id != actor.pk:
        pickup_request.driver = actor

    if status in ('ACCEPTED', 'COMPLETED') and pickup_request.driver_id is None:
        raise _reject(ErrorKind.INVALID_STATUS, "A driver must be assigned first")

    pickup_request.status = status
    pickup_request.save()

    if status == 'ACCEPTED':
        track_event('driver_acceptance', pickup_request.user_id, {
            'requestId': pickup_request.pk, 'driverId': pickup_request.driver_id
        })
    elif status == 'COMPLETED':
        track_event('pickup_completion', pickup_request.user_id, {
            'requestId': pickup_request.pk, 'driverId': pickup_request.driver_id
        })
    return pickup_request


def _resolve_target_user_id(actor, user_id: Optional[int]) -> int:
    """Staff may book for another user; everyone else books for themselves."""
    if not actor.is_staff or user_id is None or user_id == actor.pk:
        return actor.pk

    if not get_user_model().objects.filter(pk=user_id).exists():
        raise _reject(ErrorKind.NOT_FOUND, "User not found")
    return user_id


def _get_active_service(service_id: int) -> ServiceDefinition:
    service = ServiceDefinition.objects.filter(pk=service_id).first()
    if service is None:
        raise _reject(ErrorKind.NOT_FOUND, "Service not found")
    if not service.is_active:
        raise _reject(ErrorKind.NOT_FOUND, "Service is no longer active")
    return service


def _get_service_weekday(service: ServiceDefinition, day_of_week: int) -> ServiceWeekday:
    if not 0 <= day_of_week <= 6:
        raise _reject(ErrorKind.INVALID_WEEKDAY, "Invalid service day of week")

    service_weekday = service.weekdays.filter(day_of_week=day_of_week).first()
    if service_weekday is None:
        raise _reject(
            ErrorKind.NOT_FOUND,
            f"{service.name} does not run on {weekday_name(day_of_week)}"
        )
    return service_weekday


def _get_address(address_id: int, user_id: int) -> Address:
    address = Address.objects.filter(pk=address_id, user_id=user_id).first()
    if address is None:
        raise _reject(ErrorKind.NOT_FOUND, "Address not found")
    return address


def _check_timing_and_weekday(
    service: ServiceDefinition,
    day_of_week: int,
    request_date: date,
    now: datetime
) -> None:
    cutoff_hours = _setting('PICKUP_REQUEST_CUTOFF_HOURS', DEFAULT_CUTOFF_HOURS)
    _check(validate_timing(service.time, request_date, now, cutoff_hours))
    _check(validate_weekday(day_of_week, request_date))


def _ensure_no_duplicates(
    user_id: int,
    service_id: int,
    dates: Iterable[date],
    exclude_ids: Iterable[int] = ()
) -> None:
    """Raise CONFLICT if any date already holds an active request for this user and service."""
    clash = (
        PickupRequest.objects.for_key(user_id, service_id, list(dates))
        .exclude(pk__in=list(exclude_ids))
        .order_by('request_date')
        .first()
    )
    if clash is not None:
        raise _reject(
            ErrorKind.CONFLICT,
            f"You already have a pickup request for this service on {clash.request_date.isoformat()}"
        )


def _weekly_rule(day_of_week: int) -> RecurrenceRule:
    return RecurrenceRule(DayGranular(), Next(), frozenset([day_of_week]))


def _event_metadata(actor, user_id, service, data, requests, series_id) -> dict:
    metadata = {
        'serviceId': service.pk,
        'dayOfWeek': data.day_of_week,
        'addressId': data.address_id,
    }
    if series_id is not None:
        metadata['seriesId'] = series_id
    elif requests:
        metadata['requestId'] = requests[0].pk
    if user_id != actor.pk:
        metadata['adminId'] = actor.pk
    return metadata


# Services

@transaction.atomic
def create_service(data: ServiceData) -> ServiceDefinition:
    """
    Create a service with its weekday set.

    Raises:
        ValueError: If the weekdays or recurrence choices are invalid
    """
    _validate_service_rule(data.frequency, data.ordinal, data.weekdays)

    service = ServiceDefinition.objects.create(
        name=data.name,
        time=data.time_of_day,
        category=data.category,
        frequency=data.frequency,
        ordinal=data.ordinal,
        start_date=data.start_date,
        end_date=data.end_date,
        is_active=data.is_active,
    )
    ServiceWeekday.objects.bulk_create([
        ServiceWeekday(service=service, day_of_week=day) for day in sorted(set(data.weekdays))
    ])
    logger.info("Created service %s (%s)", service.pk, service.name)
    return service


@transaction.atomic
def update_service(service: ServiceDefinition, update_data: ServiceUpdateData) -> ServiceDefinition:
    """
    Update a service and synchronise its weekday set.

    Raises:
        ValueError: If the resulting recurrence choices are invalid
        SchedulingError: If a removed weekday is still referenced by requests
    """
    weekdays = (
        update_data.weekdays if update_data.weekdays is not None
        else service.allowed_weekdays
    )
    _validate_service_rule(
        update_data.frequency or service.frequency,
        update_data.ordinal or service.ordinal,
        weekdays
    )

    _apply_field_updates(service, {
        'name': update_data.name,
        'time': update_data.time_of_day,
        'category': update_data.category,
        'frequency': update_data.frequency,
        'ordinal': update_data.ordinal,
        'start_date': update_data.start_date,
        'end_date': update_data.end_date,
    })
    service.save()

    if update_data.weekdays is not None:
        _sync_service_weekdays(service, update_data.weekdays)

    return service


def _sync_service_weekdays(service: ServiceDefinition, weekdays: Iterable[int]) -> None:
    wanted = set(weekdays)
    existing = set(service.weekdays.values_list('day_of_week', flat=True))

    removed = existing - wanted
    if removed:
        try:
            service.weekdays.filter(day_of_week__in=removed).delete()
        except RestrictedError:
            names = ', '.join(weekday_name(day) for day in sorted(removed))
            raise _reject(
                ErrorKind.CONFLICT,
                f"Cannot remove {names}: pickup requests still reference it"
            ) from None

    ServiceWeekday.objects.bulk_create([
        ServiceWeekday(service=service, day_of_week=day) for day in sorted(wanted - existing)
    ])


@transaction.atomic
def toggle_service_active(service: ServiceDefinition, now: Optional[datetime] = None) -> ServiceDefinition:
    """
    Archive an active service or restore an archived one.

    Raises:
        SchedulingError: If restoring within the cooldown after the last change
    """
    now = now or timezone.now()
    cooldown_hours = _setting('SERVICE_RESTORE_COOLDOWN_HOURS', DEFAULT_RESTORE_COOLDOWN_HOURS)

    if not service.is_active:
        hours_since_update = (now - service.updated_at) / timedelta(hours=1)
        if hours_since_update < cooldown_hours:
            hours_remaining = math.ceil(cooldown_hours - hours_since_update)
            plural = "s" if hours_remaining > 1 else ""
            raise _reject(
                ErrorKind.FORBIDDEN,
                f"Service can only be restored after {cooldown_hours} hours. "
                f"Please wait {hours_remaining} more hour{plural}."
            )

    service.is_active = not service.is_active
    service.save()
    logger.info(
        "Service %s %s", service.pk, "restored" if service.is_active else "deactivated"
    )
    return service


def upcoming_service_dates(service: ServiceDefinition, from_date: date, count: int) -> List[date]:
    """
    Expand a service's own recurrence rule within its validity window.

    Args:
        service: ServiceDefinition instance
        from_date: First date to consider
        count: Maximum number of dates to return

    Returns:
        Sorted list of at most ``count`` dates
    """
    if service.start_date and service.start_date > from_date:
        from_date = service.start_date
    return generate(service.recurrence_rule, from_date, count, service.end_date)[:count]


def next_service_date(service: ServiceDefinition, after: date) -> Optional[date]:
    """First date the service runs strictly after ``after``."""
    if service.start_date and service.start_date > after:
        after = service.start_date - timedelta(days=1)
    return next_occurrence(service.recurrence_rule, after, service.end_date)


def _validate_service_rule(frequency: str, ordinal: str, weekdays: Iterable[int]) -> None:
    """Validate service recurrence data."""
    weekdays = list(weekdays)
    if not weekdays:
        raise ValueError("A service needs at least one weekday")

    RecurrenceRule.from_choices(frequency, ordinal, weekdays)


def _apply_field_updates(obj, fields: dict, allow_none: bool = False) -> None:
    """Apply field updates to object, skipping None values unless allowed (DRY helper)."""
    for field_name, value in fields.items():
        if value is not None or allow_none:
            setattr(obj, field_name, value)
