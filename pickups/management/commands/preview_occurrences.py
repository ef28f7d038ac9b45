"""
Management command to preview the upcoming dates of a service.
"""

from datetime import date

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from pickups import services
from pickups.models import ServiceDefinition
from pickups.recurrence import weekday_name, weekday_of
from pickups.types import DEFAULT_PREVIEW_COUNT


class Command(BaseCommand):
    help = 'Print the next occurrence dates of a service'

    def add_arguments(self, parser):
        parser.add_argument('service_id', type=int)
        parser.add_argument(
            '--from',
            dest='from_date',
            help='First date to consider, YYYY-MM-DD (default: today)'
        )
        parser.add_argument(
            '--count',
            type=int,
            default=DEFAULT_PREVIEW_COUNT,
            help=f'Number of dates to print (default: {DEFAULT_PREVIEW_COUNT})'
        )

    def handle(self, *args, **options):
        try:
            service = ServiceDefinition.objects.get(pk=options['service_id'])
        except ServiceDefinition.DoesNotExist:
            raise CommandError(f"Service {options['service_id']} does not exist")

        if options['from_date']:
            try:
                from_date = date.fromisoformat(options['from_date'])
            except ValueError:
                raise CommandError(f"Invalid --from date: {options['from_date']}")
        else:
            from_date = timezone.localdate()

        if options['count'] < 1:
            raise CommandError('--count must be at least 1')

        dates = services.upcoming_service_dates(service, from_date, options['count'])

        self.stdout.write(
            f'{service.name} ({service.get_frequency_display()}), from {from_date.isoformat()}:'
        )
        for occurrence in dates:
            self.stdout.write(f'  {occurrence.isoformat()} {weekday_name(weekday_of(occurrence))}')

        self.stdout.write(
            self.style.SUCCESS(f'{len(dates)} occurrence(s)')
        )
