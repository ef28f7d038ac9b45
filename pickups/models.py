"""
Models for the church transportation scheduling system.

This implementation materializes every booked occurrence:
- ServiceDefinition stores a church service and its recurrence rule
- PickupRequest stores ALL actual bookings (both one-off and series members)
- PickupSeries links the requests created from one recurring submission
"""

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from .managers import PickupRequestManager, ServiceDefinitionManager
from .recurrence import FREQUENCY_STEP_MONTHS, RecurrenceRule, WEEKDAY_NAMES


WEEKDAY_CHOICES = [(number, name) for number, name in enumerate(WEEKDAY_NAMES)]


class ServiceDefinition(models.Model):
    """
    A church service members can request transportation for.

    Services are archived (``is_active=False``) rather than deleted.
    """

    CATEGORY_CHOICES = [
        ('RECURRING', 'Recurring'),
        ('ONETIME_ONEDAY', 'One-time, one day'),
        ('ONETIME_MULTIDAY', 'One-time, multiple days'),
        ('FREQUENT_MULTIDAY', 'Frequent, multiple days'),
    ]

    FREQUENCY_CHOICES = [
        ('NONE', 'None'),
        ('DAILY', 'Daily'),
        ('WEEKLY', 'Weekly'),
        ('MONTHLY', 'Monthly'),
        ('EVERY_2_MONTHS', 'Every 2 Months'),
        ('QUARTERLY', 'Quarterly'),
        ('EVERY_4_MONTHS', 'Every 4 Months'),
        ('EVERY_6_MONTHS', 'Every 6 Months'),
        ('YEARLY', 'Yearly'),
    ]

    ORDINAL_CHOICES = [
        ('NEXT', 'Next'),
        ('FIRST', 'First'),
        ('SECOND', 'Second'),
        ('THIRD', 'Third'),
        ('FOURTH', 'Fourth'),
        ('LAST', 'Last'),
    ]

    name = models.CharField(max_length=200)
    time = models.TimeField(help_text="Time of day the service starts")
    category = models.CharField(
        max_length=20,
        choices=CATEGORY_CHOICES,
        default='RECURRING'
    )
    frequency = models.CharField(
        max_length=20,
        choices=FREQUENCY_CHOICES,
        default='WEEKLY'
    )
    ordinal = models.CharField(
        max_length=10,
        choices=ORDINAL_CHOICES,
        default='NEXT',
        help_text="Only meaningful for monthly or longer frequencies"
    )

    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ServiceDefinitionManager()

    class Meta:
        ordering = ['name', 'time']
        indexes = [
            models.Index(fields=['is_active'], name='pickups_ser_is_acti_5b1c2e_idx'),
            models.Index(fields=['start_date', 'end_date'], name='pickups_ser_start_d_8e4a1f_idx'),
        ]

    def __str__(self):
        return f"{self.name} at {self.time.strftime('%H:%M')}"

    @property
    def step_months(self):
        return FREQUENCY_STEP_MONTHS[self.frequency]

    @property
    def allowed_weekdays(self):
        return sorted(self.weekdays.values_list('day_of_week', flat=True))

    @property
    def recurrence_rule(self):
        return RecurrenceRule.from_choices(self.frequency, self.ordinal, self.allowed_weekdays)

    def clean(self):
        super().clean()

        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError({
                'end_date': 'End date cannot be before start date.'
            })

    def save(self, *args, **kwargs):
        if self.frequency in FREQUENCY_STEP_MONTHS and self.step_months == 0:
            self.ordinal = 'NEXT'
        self.full_clean()
        super().save(*args, **kwargs)


class ServiceWeekday(models.Model):
    """One weekday (0=Sunday, 6=Saturday) on which a service runs."""

    service = models.ForeignKey(
        ServiceDefinition,
        on_delete=models.CASCADE,
        related_name='weekdays'
    )
    day_of_week = models.IntegerField(choices=WEEKDAY_CHOICES)

    class Meta:
        ordering = ['day_of_week']
        constraints = [
            models.UniqueConstraint(
                fields=['service', 'day_of_week'],
                name='unique_service_weekday'
            ),
        ]

    def __str__(self):
        return f"{self.service.name} - {self.get_day_of_week_display()}"


class Address(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='addresses'
    )
    street = models.CharField(max_length=255)
    city = models.CharField(max_length=100)
    province = models.CharField(max_length=100)
    postal_code = models.CharField(max_length=20)
    country = models.CharField(max_length=100, default='Canada')
    is_default = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'addresses'

    def __str__(self):
        return f"{self.street}, {self.city}, {self.province} {self.postal_code}"


class PickupSeries(models.Model):
    """Groups the requests generated from one recurring submission."""

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = 'pickup series'

    def __str__(self):
        return f"Series #{self.pk}"


class PickupRequest(models.Model):
    """
    A booked occurrence: one member, one service, one calendar date.

    One-off requests: series = null
    Recurring requests: reference the PickupSeries they were created with
    """

    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('ACCEPTED', 'Accepted'),
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='pickup_requests'
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_pickups'
    )
    service = models.ForeignKey(
        ServiceDefinition,
        on_delete=models.CASCADE,
        related_name='requests'
    )
    service_weekday = models.ForeignKey(
        ServiceWeekday,
        on_delete=models.RESTRICT,
        related_name='requests'
    )
    address = models.ForeignKey(
        Address,
        on_delete=models.RESTRICT,
        related_name='requests'
    )
    series = models.ForeignKey(
        PickupSeries,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='requests',
        help_text="Series this request belongs to (null for one-off requests)"
    )

    request_date = models.DateField()
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default='PENDING'
    )

    is_pick_up = models.BooleanField(default=True)
    is_drop_off = models.BooleanField(default=False)
    is_group_ride = models.BooleanField(default=False)
    number_of_group = models.PositiveIntegerField(null=True, blank=True)
    notes = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PickupRequestManager()

    class Meta:
        ordering = ['request_date', 'id']
        indexes = [
            models.Index(fields=['user', 'service', 'request_date'], name='pickups_pic_user_id_3f9d2a_idx'),
            models.Index(fields=['series', 'request_date'], name='pickups_pic_series__7c1e4b_idx'),
            models.Index(fields=['status'], name='pickups_pic_status_a2d6e9_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'service', 'request_date'],
                condition=~models.Q(status='CANCELLED'),
                name='unique_active_request_per_day'
            ),
        ]

    def __str__(self):
        status_str = f" [{self.status}]" if self.status != 'PENDING' else ""
        return f"{self.service.name} - {self.request_date.isoformat()}{status_str}"

    @property
    def is_recurring(self):
        return self.series_id is not None


class AnalyticsEvent(models.Model):
    """Append-only record of request lifecycle events."""

    event_type = models.CharField(max_length=100)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='analytics_events'
    )
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['event_type', 'created_at'], name='pickups_ana_event_t_4b8f0c_idx'),
        ]

    def __str__(self):
        return f"{self.event_type} @ {self.created_at:%Y-%m-%d %H:%M}"
