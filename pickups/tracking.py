"""
Fire-and-forget lifecycle event tracking.

Events are recorded only after the surrounding transaction commits, and
a failure to record one never affects the mutation that triggered it.
"""

import logging

from django.db import DatabaseError, transaction

from .models import AnalyticsEvent


logger = logging.getLogger(__name__)


def _record_event(event_type, user_id, metadata):
    try:
        AnalyticsEvent.objects.create(
            event_type=event_type,
            user_id=user_id,
            metadata=metadata,
        )
    except DatabaseError:
        logger.exception("Analytics tracking failed for %s", event_type)


def track_event(event_type: str, user_id=None, metadata=None) -> None:
    """Schedule an analytics event for after the current transaction commits."""
    payload = dict(metadata or {})
    transaction.on_commit(lambda: _record_event(event_type, user_id, payload))


def request_event_type(action: str, is_series: bool, on_behalf: bool) -> str:
    """
    Name the event for a created/updated/cancelled request.

    Examples: ``pickup_request_updated``,
    ``recurring_pickup_request_created``,
    ``admin_user_recurring_pickup_request_updated``.
    """
    name = f"pickup_request_{action}"
    if is_series:
        name = f"recurring_{name}"
    if on_behalf:
        name = f"admin_user_{name}"
    return name
