"""
Custom managers and querysets for pickup models.

QuerySets define chainable query methods.
Managers use QuerySets to enable method chaining.
No business logic should be here - only query operations.
"""

from django.db import models


class ServiceDefinitionQuerySet(models.QuerySet):
    """Custom queryset for ServiceDefinition model with chainable methods."""

    def active(self):
        """Get all active (non-archived) services."""
        return self.filter(is_active=True)

    def for_weekday(self, weekday):
        """
        Get active services running on a weekday.

        Args:
            weekday: int (0=Sunday, 6=Saturday)
        """
        return self.filter(weekdays__day_of_week=weekday, is_active=True).distinct()

    def active_on_date(self, date):
        """
        Get services whose validity window contains a date.

        Args:
            date: date object
        """
        return self.filter(
            is_active=True
        ).filter(
            models.Q(start_date__isnull=True) | models.Q(start_date__lte=date)
        ).filter(
            models.Q(end_date__isnull=True) | models.Q(end_date__gte=date)
        )


class ServiceDefinitionManager(models.Manager):
    """Custom manager for ServiceDefinition model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return ServiceDefinitionQuerySet(self.model, using=self._db)

    def active(self):
        """Get all active (non-archived) services."""
        return self.get_queryset().active()

    def for_weekday(self, weekday):
        return self.get_queryset().for_weekday(weekday)

    def active_on_date(self, date):
        return self.get_queryset().active_on_date(date)


class PickupRequestQuerySet(models.QuerySet):
    """Custom queryset for PickupRequest model with chainable methods."""

    def active(self):
        """Get requests that still hold their slot (anything not cancelled)."""
        return self.exclude(status='CANCELLED')

    def for_user(self, user):
        return self.filter(user=user)

    def for_series(self, series_id):
        return self.filter(series_id=series_id)

    def from_date(self, date):
        """Get requests on or after a date."""
        return self.filter(request_date__gte=date)

    def for_key(self, user_id, service_id, request_date):
        """
        Get active requests occupying a (user, service, date) slot.

        Args:
            user_id: id of the member
            service_id: id of the ServiceDefinition
            request_date: date object, or a list of dates
        """
        queryset = self.active().filter(user_id=user_id, service_id=service_id)
        if isinstance(request_date, (list, tuple, set)):
            return queryset.filter(request_date__in=list(request_date))
        return queryset.filter(request_date=request_date)

    def upcoming(self, today):
        """Get active requests from ``today`` onwards."""
        return self.active().from_date(today)


class PickupRequestManager(models.Manager):
    """Custom manager for PickupRequest model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return PickupRequestQuerySet(self.model, using=self._db)

    def active(self):
        return self.get_queryset().active()

    def for_user(self, user):
        return self.get_queryset().for_user(user)

    def for_series(self, series_id):
        return self.get_queryset().for_series(series_id)

    def for_key(self, user_id, service_id, request_date):
        """Get active requests occupying a (user, service, date) slot."""
        return self.get_queryset().for_key(user_id, service_id, request_date)

    def upcoming(self, today):
        return self.get_queryset().upcoming(today)
