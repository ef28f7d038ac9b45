"""
Admin configuration for the pickups app.
"""

from django.contrib import admin
from .models import (
    Address,
    AnalyticsEvent,
    PickupRequest,
    PickupSeries,
    ServiceDefinition,
    ServiceWeekday,
)


class ServiceWeekdayInline(admin.TabularInline):
    model = ServiceWeekday
    extra = 0


@admin.register(ServiceDefinition)
class ServiceDefinitionAdmin(admin.ModelAdmin):
    """Admin interface for ServiceDefinition model."""

    list_display = ['name', 'time', 'category', 'frequency', 'ordinal', 'start_date', 'end_date', 'is_active']
    list_filter = ['is_active', 'category', 'frequency', 'created_at']
    search_fields = ['name']
    inlines = [ServiceWeekdayInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('name', 'time', 'category', 'is_active')
        }),
        ('Recurrence Rules', {
            'fields': ('frequency', 'ordinal')
        }),
        ('Service Window', {
            'fields': ('start_date', 'end_date')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    readonly_fields = ['created_at', 'updated_at']


@admin.register(Address)
class AddressAdmin(admin.ModelAdmin):
    list_display = ['street', 'city', 'province', 'postal_code', 'user', 'is_default']
    list_filter = ['province', 'is_default']
    search_fields = ['street', 'city', 'postal_code', 'user__username']


class PickupRequestInline(admin.TabularInline):
    model = PickupRequest
    fields = ['request_date', 'status', 'driver']
    readonly_fields = ['request_date']
    extra = 0
    show_change_link = True


@admin.register(PickupSeries)
class PickupSeriesAdmin(admin.ModelAdmin):
    list_display = ['id', 'created_at']
    inlines = [PickupRequestInline]


@admin.register(PickupRequest)
class PickupRequestAdmin(admin.ModelAdmin):
    """Admin interface for PickupRequest model."""

    list_display = ['request_date', 'service', 'user', 'driver', 'status', 'series']
    list_filter = ['status', 'service', 'is_group_ride', 'created_at']
    search_fields = ['user__username', 'notes']
    date_hierarchy = 'request_date'
    raw_id_fields = ['user', 'driver', 'address', 'series']

    fieldsets = (
        ('Request', {
            'fields': ('user', 'service', 'service_weekday', 'address', 'request_date', 'series')
        }),
        ('Ride Details', {
            'fields': ('is_pick_up', 'is_drop_off', 'is_group_ride', 'number_of_group', 'notes')
        }),
        ('Status', {
            'fields': ('status', 'driver')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    readonly_fields = ['created_at', 'updated_at']


@admin.register(AnalyticsEvent)
class AnalyticsEventAdmin(admin.ModelAdmin):
    list_display = ['event_type', 'user', 'created_at']
    list_filter = ['event_type']
    readonly_fields = ['event_type', 'user', 'metadata', 'created_at']
