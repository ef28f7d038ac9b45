"""
Tests for models, managers and the service layer.

Every lifecycle call receives a fixed ``now`` in late 2023 so the
January 2024 request dates are always ahead of the cutoff.
"""

from datetime import date, datetime, time, timedelta
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone

from pickups import services
from pickups.exceptions import ErrorKind, SchedulingError
from pickups.models import (
    Address,
    AnalyticsEvent,
    PickupRequest,
    PickupSeries,
    ServiceDefinition,
)
from pickups.recurrence import generate
from pickups.types import RequestData, ServiceData, ServiceUpdateData


NOW = timezone.make_aware(datetime(2023, 12, 20, 12, 0))

User = get_user_model()


class SchedulingTestCase(TestCase):
    """Shared fixtures: a member, a second member, a staff driver and a Mon/Tue service."""

    def setUp(self):
        self.user = User.objects.create_user(username='member', password='pass')
        self.other = User.objects.create_user(username='other', password='pass')
        self.staff = User.objects.create_user(username='driver', password='pass', is_staff=True)

        self.address = Address.objects.create(
            user=self.user,
            street='12 King St',
            city='Toronto',
            province='ON',
            postal_code='M5H 1A1',
        )
        self.other_address = Address.objects.create(
            user=self.other,
            street='99 Queen St',
            city='Toronto',
            province='ON',
            postal_code='M5H 2N2',
        )

        self.service = services.create_service(ServiceData(
            name='Bible Study',
            time_of_day=time(9, 0),
            weekdays=[1, 2],
        ))

    def request_data(self, request_date, day_of_week=1, **kwargs):
        kwargs.setdefault('service_id', self.service.pk)
        kwargs.setdefault('address_id', self.address.pk)
        return RequestData(day_of_week=day_of_week, request_date=request_date, **kwargs)

    def create_series(self, start=date(2024, 1, 1), end=date(2024, 2, 26)):
        return services.create_request(
            self.user,
            self.request_data(start, is_recurring=True, end_date=end),
            now=NOW
        )

    def assertRejected(self, kind, func, *args, **kwargs):
        with self.assertRaises(SchedulingError) as ctx:
            func(*args, **kwargs)
        self.assertEqual(ctx.exception.kind, kind)
        return ctx.exception


class ServiceDefinitionModelTests(SchedulingTestCase):

    def test_allowed_weekdays_sorted(self):
        self.assertEqual(self.service.allowed_weekdays, [1, 2])

    def test_day_granular_service_stores_next(self):
        service = ServiceDefinition.objects.create(
            name='Evening Prayer', time=time(19, 0), frequency='WEEKLY', ordinal='LAST'
        )

        self.assertEqual(service.ordinal, 'NEXT')

    def test_end_date_before_start_date_rejected(self):
        with self.assertRaises(ValidationError):
            ServiceDefinition.objects.create(
                name='Retreat',
                time=time(10, 0),
                start_date=date(2024, 6, 1),
                end_date=date(2024, 5, 1),
            )

    def test_recurrence_rule(self):
        rule = self.service.recurrence_rule

        self.assertTrue(rule.is_day_granular)
        self.assertEqual(rule.weekdays, frozenset([1, 2]))


class ManagerTests(SchedulingTestCase):

    def setUp(self):
        super().setUp()
        self.archived = services.create_service(ServiceData(
            name='Old Service', time_of_day=time(11, 0), weekdays=[1], is_active=False
        ))
        self.seasonal = services.create_service(ServiceData(
            name='Advent Service',
            time_of_day=time(18, 0),
            weekdays=[3],
            start_date=date(2024, 12, 1),
            end_date=date(2024, 12, 24),
        ))

    def test_active(self):
        active = ServiceDefinition.objects.active()

        self.assertIn(self.service, active)
        self.assertNotIn(self.archived, active)

    def test_for_weekday(self):
        self.assertEqual(list(ServiceDefinition.objects.for_weekday(1)), [self.service])
        self.assertEqual(list(ServiceDefinition.objects.for_weekday(3)), [self.seasonal])

    def test_active_on_date(self):
        self.assertNotIn(self.seasonal, ServiceDefinition.objects.active_on_date(date(2024, 11, 30)))
        self.assertIn(self.seasonal, ServiceDefinition.objects.active_on_date(date(2024, 12, 24)))
        self.assertIn(self.service, ServiceDefinition.objects.active_on_date(date(2024, 12, 24)))

    def test_for_key_ignores_cancelled(self):
        created = services.create_request(self.user, self.request_data(date(2024, 1, 1)), now=NOW)
        key = (self.user.pk, self.service.pk, date(2024, 1, 1))

        self.assertEqual(PickupRequest.objects.for_key(*key).count(), 1)

        PickupRequest.objects.filter(pk=created[0].pk).update(status='CANCELLED')
        self.assertEqual(PickupRequest.objects.for_key(*key).count(), 0)

    def test_upcoming(self):
        self.create_series()

        upcoming = PickupRequest.objects.upcoming(date(2024, 2, 13))

        self.assertEqual(
            [r.request_date for r in upcoming],
            [date(2024, 2, 19), date(2024, 2, 26)]
        )


class CreateRequestTests(SchedulingTestCase):
    """Test one-off and recurring request creation."""

    def test_create_one_off(self):
        created = services.create_request(
            self.user, self.request_data(date(2024, 1, 1), notes=''), now=NOW
        )

        self.assertEqual(len(created), 1)
        pickup_request = created[0]
        self.assertIsNone(pickup_request.series)
        self.assertFalse(pickup_request.is_recurring)
        self.assertEqual(pickup_request.status, 'PENDING')
        self.assertEqual(pickup_request.user, self.user)
        self.assertIsNone(pickup_request.notes)

    def test_create_recurring_series(self):
        """Mondays from January 1st through February 26th."""
        created = self.create_series()

        self.assertEqual(len(created), 9)
        self.assertEqual(len({r.series_id for r in created}), 1)
        self.assertIsNotNone(created[0].series_id)
        self.assertEqual(
            [r.request_date for r in created],
            [date(2024, 1, 1) + timedelta(weeks=i) for i in range(9)]
        )
        self.assertEqual(PickupSeries.objects.count(), 1)

    def test_recurring_requires_end_date(self):
        self.assertRejected(
            ErrorKind.INVALID_SPAN,
            services.create_request,
            self.user, self.request_data(date(2024, 1, 1), is_recurring=True), now=NOW
        )

    def test_recurring_longer_than_three_months(self):
        error = self.assertRejected(
            ErrorKind.INVALID_SPAN,
            services.create_request,
            self.user,
            self.request_data(date(2024, 1, 1), is_recurring=True, end_date=date(2024, 4, 8)),
            now=NOW
        )

        self.assertEqual(error.message, "Recurring period must not exceed 3 months")
        self.assertEqual(PickupRequest.objects.count(), 0)

    def test_date_on_wrong_weekday(self):
        error = self.assertRejected(
            ErrorKind.INVALID_WEEKDAY,
            services.create_request,
            self.user, self.request_data(date(2024, 1, 2), day_of_week=1), now=NOW
        )

        self.assertEqual(error.message, "Request date should be a Monday")

    def test_weekday_out_of_range(self):
        self.assertRejected(
            ErrorKind.INVALID_WEEKDAY,
            services.create_request,
            self.user, self.request_data(date(2024, 1, 1), day_of_week=9), now=NOW
        )

    def test_service_does_not_run_on_weekday(self):
        error = self.assertRejected(
            ErrorKind.NOT_FOUND,
            services.create_request,
            self.user, self.request_data(date(2024, 1, 3), day_of_week=3), now=NOW
        )

        self.assertEqual(error.message, "Bible Study does not run on Wednesday")

    def test_inside_cutoff(self):
        self.assertRejected(
            ErrorKind.INVALID_TIMING,
            services.create_request,
            self.user,
            self.request_data(date(2024, 1, 1)),
            now=timezone.make_aware(datetime(2024, 1, 1, 8, 30))
        )

    def test_missing_service(self):
        self.assertRejected(
            ErrorKind.NOT_FOUND,
            services.create_request,
            self.user, self.request_data(date(2024, 1, 1), service_id=9999), now=NOW
        )

    def test_archived_service(self):
        ServiceDefinition.objects.filter(pk=self.service.pk).update(is_active=False)

        error = self.assertRejected(
            ErrorKind.NOT_FOUND,
            services.create_request,
            self.user, self.request_data(date(2024, 1, 1)), now=NOW
        )

        self.assertEqual(error.message, "Service is no longer active")

    def test_address_of_another_user(self):
        self.assertRejected(
            ErrorKind.NOT_FOUND,
            services.create_request,
            self.user,
            self.request_data(date(2024, 1, 1), address_id=self.other_address.pk),
            now=NOW
        )

    def test_duplicate_one_off(self):
        services.create_request(self.user, self.request_data(date(2024, 1, 1)), now=NOW)

        self.assertRejected(
            ErrorKind.CONFLICT,
            services.create_request,
            self.user, self.request_data(date(2024, 1, 1)), now=NOW
        )

    def test_cancelled_request_frees_the_slot(self):
        created = services.create_request(self.user, self.request_data(date(2024, 1, 1)), now=NOW)
        services.cancel_request(self.user, created[0].pk, 'Travelling', now=NOW)

        again = services.create_request(self.user, self.request_data(date(2024, 1, 1)), now=NOW)

        self.assertEqual(len(again), 1)

    def test_series_overlapping_existing_request_writes_nothing(self):
        services.create_request(self.user, self.request_data(date(2024, 1, 22)), now=NOW)

        error = self.assertRejected(ErrorKind.CONFLICT, self.create_series)

        self.assertIn('2024-01-22', error.message)
        self.assertEqual(PickupSeries.objects.count(), 0)
        self.assertEqual(PickupRequest.objects.count(), 1)

    def test_other_member_same_date_is_not_a_duplicate(self):
        services.create_request(self.user, self.request_data(date(2024, 1, 1)), now=NOW)

        created = services.create_request(
            self.other,
            self.request_data(date(2024, 1, 1), address_id=self.other_address.pk),
            now=NOW
        )

        self.assertEqual(created[0].user, self.other)

    def test_staff_books_on_behalf_of_member(self):
        created = services.create_request(
            self.staff,
            self.request_data(date(2024, 1, 1), user_id=self.user.pk),
            now=NOW
        )

        self.assertEqual(created[0].user, self.user)

    def test_member_cannot_book_for_someone_else(self):
        """A non-staff user_id is ignored, so the other member's address is not theirs."""
        self.assertRejected(
            ErrorKind.NOT_FOUND,
            services.create_request,
            self.other,
            self.request_data(date(2024, 1, 1), user_id=self.user.pk),
            now=NOW
        )


class ActiveSlotConstraintTests(SchedulingTestCase):
    """The store holds at most one non-cancelled request per (user, service, date)."""

    def book_directly(self, request_date=date(2024, 1, 1), **kwargs):
        return PickupRequest.objects.create(
            user=self.user,
            service=self.service,
            service_weekday=self.service.weekdays.get(day_of_week=1),
            address=self.address,
            request_date=request_date,
            **kwargs
        )

    def test_second_active_row_rejected(self):
        self.book_directly()

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                self.book_directly()

        self.assertEqual(PickupRequest.objects.count(), 1)

    def test_cancelled_rows_do_not_hold_the_slot(self):
        self.book_directly(status='CANCELLED')
        self.book_directly(status='CANCELLED')
        self.book_directly()

        self.assertEqual(PickupRequest.objects.active().count(), 1)

    def test_insert_racing_the_duplicate_check_is_a_conflict(self):
        """Another writer takes the slot after the explicit check has passed."""
        self.book_directly()

        with mock.patch('pickups.services._ensure_no_duplicates'):
            self.assertRejected(
                ErrorKind.CONFLICT,
                services.create_request,
                self.user, self.request_data(date(2024, 1, 1)), now=NOW
            )

        self.assertEqual(PickupRequest.objects.count(), 1)

    def test_series_insert_racing_the_duplicate_check_is_a_conflict(self):
        self.book_directly(date(2024, 1, 22))

        with mock.patch('pickups.services._ensure_no_duplicates'):
            self.assertRejected(ErrorKind.CONFLICT, self.create_series)

        self.assertEqual(PickupSeries.objects.count(), 0)
        self.assertEqual(PickupRequest.objects.count(), 1)


class EventTrackingTests(SchedulingTestCase):

    def test_one_off_event(self):
        with self.captureOnCommitCallbacks(execute=True):
            created = services.create_request(self.user, self.request_data(date(2024, 1, 1)), now=NOW)

        event = AnalyticsEvent.objects.get()
        self.assertEqual(event.event_type, 'pickup_request_created')
        self.assertEqual(event.user, self.user)
        self.assertEqual(event.metadata['requestId'], created[0].pk)

    def test_series_event(self):
        with self.captureOnCommitCallbacks(execute=True):
            created = self.create_series()

        event = AnalyticsEvent.objects.get()
        self.assertEqual(event.event_type, 'recurring_pickup_request_created')
        self.assertEqual(event.metadata['seriesId'], created[0].series_id)

    def test_on_behalf_event(self):
        with self.captureOnCommitCallbacks(execute=True):
            services.create_request(
                self.staff,
                self.request_data(date(2024, 1, 1), user_id=self.user.pk),
                now=NOW
            )

        event = AnalyticsEvent.objects.get()
        self.assertEqual(event.event_type, 'admin_user_pickup_request_created')
        self.assertEqual(event.metadata['adminId'], self.staff.pk)

    def test_no_event_for_rejected_operation(self):
        with self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(SchedulingError):
                services.create_request(
                    self.user, self.request_data(date(2024, 1, 2)), now=NOW
                )

        self.assertFalse(AnalyticsEvent.objects.exists())

    def test_tracking_failure_does_not_undo_request(self):
        with mock.patch(
            'pickups.tracking.AnalyticsEvent.objects.create',
            side_effect=DatabaseError('analytics store unavailable')
        ):
            with self.assertLogs('pickups.tracking', level='ERROR'):
                with self.captureOnCommitCallbacks(execute=True):
                    services.create_request(self.user, self.request_data(date(2024, 1, 1)), now=NOW)

        self.assertEqual(PickupRequest.objects.count(), 1)


class UpdateRequestTests(SchedulingTestCase):
    """Test single-occurrence and series updates."""

    def setUp(self):
        super().setUp()
        self.series = self.create_series()
        self.third = self.series[2]

    def series_dates(self):
        return list(
            PickupRequest.objects.for_series(self.third.series_id)
            .order_by('request_date')
            .values_list('request_date', flat=True)
        )

    def test_same_values_keeps_series_membership(self):
        updated = services.update_request(
            self.user, self.third.pk, self.request_data(self.third.request_date), now=NOW
        )

        self.assertEqual(len(updated), 1)
        self.third.refresh_from_db()
        self.assertEqual(self.third.series_id, self.series[0].series_id)
        self.assertEqual(self.third.request_date, date(2024, 1, 15))

    def test_move_single_occurrence(self):
        services.update_request(
            self.user,
            self.third.pk,
            self.request_data(date(2024, 1, 16), day_of_week=2, notes='Side door'),
            now=NOW
        )

        self.third.refresh_from_db()
        self.assertEqual(self.third.request_date, date(2024, 1, 16))
        self.assertEqual(self.third.service_weekday.day_of_week, 2)
        self.assertEqual(self.third.notes, 'Side door')
        self.assertIsNotNone(self.third.series_id)

    def test_move_single_onto_sibling_date_conflicts(self):
        self.assertRejected(
            ErrorKind.CONFLICT,
            services.update_request,
            self.user, self.third.pk, self.request_data(date(2024, 1, 22)), now=NOW
        )

    def test_missing_request(self):
        error = self.assertRejected(
            ErrorKind.NOT_FOUND,
            services.update_request,
            self.user, 9999, self.request_data(date(2024, 1, 15)), now=NOW
        )

        self.assertEqual(error.message, "The Pickup Request does not exist")

    def test_not_owner(self):
        self.assertRejected(
            ErrorKind.FORBIDDEN,
            services.update_request,
            self.other, self.third.pk, self.request_data(date(2024, 1, 15)), now=NOW
        )

    def test_staff_may_update(self):
        updated = services.update_request(
            self.staff, self.third.pk, self.request_data(date(2024, 1, 15), notes='Call first'), now=NOW
        )

        self.assertEqual(updated[0].notes, 'Call first')

    def test_series_update_on_one_off(self):
        one_off = services.create_request(
            self.user, self.request_data(date(2024, 1, 2), day_of_week=2), now=NOW
        )[0]

        self.assertRejected(
            ErrorKind.NOT_FOUND,
            services.update_request,
            self.user, one_off.pk, self.request_data(date(2024, 1, 2), day_of_week=2),
            update_series=True, now=NOW
        )

    def test_series_details_update_keeps_dates(self):
        before = self.series_dates()

        updated = services.update_request(
            self.user,
            self.third.pk,
            self.request_data(date(2024, 1, 15), notes='Wheelchair', is_group_ride=True, number_of_group=3),
            update_series=True,
            now=NOW
        )

        self.assertEqual(len(updated), 7)
        self.assertEqual(self.series_dates(), before)
        rows = PickupRequest.objects.for_series(self.third.series_id)
        self.assertEqual(
            list(rows.filter(notes='Wheelchair').values_list('request_date', flat=True)),
            before[2:]
        )
        self.assertFalse(rows.filter(request_date__lt=date(2024, 1, 15), notes='Wheelchair').exists())

    def test_series_shift_moves_this_and_later(self):
        updated = services.update_request(
            self.user,
            self.third.pk,
            self.request_data(date(2024, 1, 16), day_of_week=2),
            update_series=True,
            now=NOW
        )

        self.assertEqual(len(updated), 7)
        self.assertEqual(self.series_dates(), [
            date(2024, 1, 1),
            date(2024, 1, 8),
            date(2024, 1, 16),
            date(2024, 1, 23),
            date(2024, 1, 30),
            date(2024, 2, 6),
            date(2024, 2, 13),
            date(2024, 2, 20),
            date(2024, 2, 27),
        ])

    def test_series_shift_conflict_changes_nothing(self):
        services.create_request(
            self.user, self.request_data(date(2024, 1, 30), day_of_week=2), now=NOW
        )
        before = self.series_dates()

        with self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(SchedulingError) as ctx:
                services.update_request(
                    self.user,
                    self.third.pk,
                    self.request_data(date(2024, 1, 16), day_of_week=2),
                    update_series=True,
                    now=NOW
                )

        self.assertEqual(ctx.exception.kind, ErrorKind.CONFLICT)
        self.assertEqual(self.series_dates(), before)
        self.assertFalse(
            AnalyticsEvent.objects.filter(event_type='recurring_pickup_request_updated').exists()
        )

    def test_series_shift_onto_sibling_dates(self):
        """Moving forward a week hands each row the date its neighbour is leaving."""
        accepted = self.series[3]
        PickupRequest.objects.filter(pk=accepted.pk).update(status='ACCEPTED', driver=self.staff)

        services.update_request(
            self.user,
            self.third.pk,
            self.request_data(date(2024, 1, 22)),
            update_series=True,
            now=NOW
        )

        self.assertEqual(
            self.series_dates(),
            [date(2024, 1, 1), date(2024, 1, 8)] + [date(2024, 1, 22) + timedelta(weeks=i) for i in range(7)]
        )
        accepted.refresh_from_db()
        self.assertEqual(accepted.request_date, date(2024, 2, 12))
        self.assertEqual(accepted.status, 'ACCEPTED')
        self.assertEqual(
            PickupRequest.objects.for_series(self.third.series_id).filter(status='PENDING').count(),
            8
        )

    def test_series_generation_shortfall_changes_nothing(self):
        before = self.series_dates()

        def short_generate(rule, from_date, count):
            return generate(rule, from_date, count)[:-1]

        with mock.patch('pickups.services.generate', side_effect=short_generate):
            with self.captureOnCommitCallbacks(execute=True):
                with self.assertRaises(SchedulingError) as ctx:
                    services.update_request(
                        self.user,
                        self.third.pk,
                        self.request_data(date(2024, 1, 16), day_of_week=2),
                        update_series=True,
                        now=NOW
                    )

        self.assertEqual(ctx.exception.kind, ErrorKind.GENERATION_MISMATCH)
        self.assertEqual(ctx.exception.message, "Error updating service date for the series")
        self.assertEqual(self.series_dates(), before)
        self.assertFalse(
            AnalyticsEvent.objects.filter(event_type='recurring_pickup_request_updated').exists()
        )

    def test_series_update_event(self):
        with self.captureOnCommitCallbacks(execute=True):
            services.update_request(
                self.user,
                self.third.pk,
                self.request_data(date(2024, 1, 15), notes='Gate code 12'),
                update_series=True,
                now=NOW
            )

        event = AnalyticsEvent.objects.get()
        self.assertEqual(event.event_type, 'recurring_pickup_request_updated')
        self.assertEqual(event.metadata['seriesId'], self.third.series_id)


class CancelRequestTests(SchedulingTestCase):

    def setUp(self):
        super().setUp()
        self.pickup_request = services.create_request(
            self.user, self.request_data(date(2024, 1, 1), notes='Need ramp'), now=NOW
        )[0]

    def test_owner_cancels(self):
        cancelled = services.cancel_request(self.user, self.pickup_request.pk, 'Feeling unwell', now=NOW)

        self.assertEqual(cancelled.status, 'CANCELLED')
        self.assertEqual(cancelled.notes, 'Need ramp\n\nCANCELLED: Feeling unwell')

    def test_reason_required(self):
        self.assertRejected(
            ErrorKind.INVALID_STATUS,
            services.cancel_request,
            self.user, self.pickup_request.pk, '   ', now=NOW
        )

    def test_other_member_cannot_cancel(self):
        self.assertRejected(
            ErrorKind.NOT_FOUND,
            services.cancel_request,
            self.other, self.pickup_request.pk, 'Mistake', now=NOW
        )

    def test_staff_cancels_for_member(self):
        with self.captureOnCommitCallbacks(execute=True):
            services.cancel_request(self.staff, self.pickup_request.pk, 'Road closed', now=NOW)

        event = AnalyticsEvent.objects.get(event_type='admin_user_pickup_request_cancelled')
        self.assertEqual(event.metadata['cancelledBy'], self.staff.pk)

    def test_completed_cannot_be_cancelled(self):
        PickupRequest.objects.filter(pk=self.pickup_request.pk).update(status='COMPLETED')

        self.assertRejected(
            ErrorKind.INVALID_STATUS,
            services.cancel_request,
            self.user, self.pickup_request.pk, 'Too late', now=NOW
        )

    def test_already_cancelled(self):
        services.cancel_request(self.user, self.pickup_request.pk, 'Away', now=NOW)

        self.assertRejected(
            ErrorKind.INVALID_STATUS,
            services.cancel_request,
            self.user, self.pickup_request.pk, 'Away', now=NOW
        )

    def test_accepted_request_inside_cancel_cutoff(self):
        PickupRequest.objects.filter(pk=self.pickup_request.pk).update(
            status='ACCEPTED', driver=self.staff
        )

        self.assertRejected(
            ErrorKind.INVALID_TIMING,
            services.cancel_request,
            self.user, self.pickup_request.pk, 'Overslept',
            now=timezone.make_aware(datetime(2024, 1, 1, 7, 30))
        )

    def test_accepted_request_clears_driver(self):
        PickupRequest.objects.filter(pk=self.pickup_request.pk).update(
            status='ACCEPTED', driver=self.staff
        )

        cancelled = services.cancel_request(
            self.user, self.pickup_request.pk, 'Plans changed',
            now=timezone.make_aware(datetime(2024, 1, 1, 6, 0))
        )

        self.assertIsNone(cancelled.driver)


class UpdateRequestStatusTests(SchedulingTestCase):

    def setUp(self):
        super().setUp()
        self.pickup_request = services.create_request(
            self.user, self.request_data(date(2024, 1, 1)), now=NOW
        )[0]

    def test_staff_accepts_and_becomes_driver(self):
        with self.captureOnCommitCallbacks(execute=True):
            accepted = services.update_request_status(self.staff, self.pickup_request.pk, 'ACCEPTED')

        self.assertEqual(accepted.status, 'ACCEPTED')
        self.assertEqual(accepted.driver, self.staff)
        self.assertTrue(AnalyticsEvent.objects.filter(event_type='driver_acceptance').exists())

    def test_complete_after_accept(self):
        services.update_request_status(self.staff, self.pickup_request.pk, 'ACCEPTED')

        completed = services.update_request_status(self.staff, self.pickup_request.pk, 'COMPLETED')

        self.assertEqual(completed.status, 'COMPLETED')
        self.assertRejected(
            ErrorKind.INVALID_STATUS,
            services.update_request_status,
            self.staff, self.pickup_request.pk, 'PENDING'
        )

    def test_accept_requires_driver(self):
        error = self.assertRejected(
            ErrorKind.INVALID_STATUS,
            services.update_request_status,
            self.user, self.pickup_request.pk, 'ACCEPTED'
        )

        self.assertEqual(error.message, "A driver must be assigned first")

    def test_other_member_forbidden(self):
        self.assertRejected(
            ErrorKind.FORBIDDEN,
            services.update_request_status,
            self.other, self.pickup_request.pk, 'PENDING'
        )

    def test_cancel_goes_through_cancel_request(self):
        self.assertRejected(
            ErrorKind.INVALID_STATUS,
            services.update_request_status,
            self.user, self.pickup_request.pk, 'CANCELLED'
        )


class ServiceManagementTests(SchedulingTestCase):
    """Test service creation, update, archiving and date previews."""

    def test_create_requires_weekdays(self):
        with self.assertRaises(ValueError):
            services.create_service(ServiceData(name='Empty', time_of_day=time(9, 0), weekdays=[]))

    def test_create_rejects_unknown_ordinal(self):
        with self.assertRaises(ValueError):
            services.create_service(ServiceData(
                name='Odd', time_of_day=time(9, 0), weekdays=[0], frequency='MONTHLY', ordinal='FIFTH'
            ))

    def test_update_fields_and_weekdays(self):
        updated = services.update_service(self.service, ServiceUpdateData(
            name='Evening Bible Study', time_of_day=time(19, 0), weekdays=[2, 4]
        ))

        self.assertEqual(updated.name, 'Evening Bible Study')
        self.assertEqual(updated.time, time(19, 0))
        self.assertEqual(updated.allowed_weekdays, [2, 4])

    def test_update_cannot_drop_referenced_weekday(self):
        services.create_request(self.user, self.request_data(date(2024, 1, 1)), now=NOW)

        error = self.assertRejected(
            ErrorKind.CONFLICT,
            services.update_service,
            self.service, ServiceUpdateData(weekdays=[2])
        )

        self.assertIn('Monday', error.message)
        self.service.refresh_from_db()
        self.assertEqual(self.service.allowed_weekdays, [1, 2])

    def test_toggle_archives_then_waits_to_restore(self):
        archived = services.toggle_service_active(self.service)
        self.assertFalse(archived.is_active)

        error = self.assertRejected(ErrorKind.FORBIDDEN, services.toggle_service_active, archived)
        self.assertIn('24 hours', error.message)

        ServiceDefinition.objects.filter(pk=archived.pk).update(
            updated_at=timezone.now() - timedelta(hours=25)
        )
        archived.refresh_from_db()

        restored = services.toggle_service_active(archived)
        self.assertTrue(restored.is_active)

    def test_upcoming_dates_clamped_to_window(self):
        service = services.create_service(ServiceData(
            name='First Friday Prayer',
            time_of_day=time(19, 0),
            weekdays=[5],
            frequency='MONTHLY',
            ordinal='FIRST',
            start_date=date(2024, 1, 1),
            end_date=date(2024, 2, 15),
        ))

        self.assertEqual(
            services.upcoming_service_dates(service, date(2023, 6, 1), 5),
            [date(2024, 1, 5), date(2024, 2, 2)]
        )

    def test_upcoming_dates_respects_count(self):
        dates = services.upcoming_service_dates(self.service, date(2024, 1, 1), 3)

        self.assertEqual(dates, [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 8)])

    def test_next_service_date(self):
        self.assertEqual(services.next_service_date(self.service, date(2024, 1, 2)), date(2024, 1, 8))
