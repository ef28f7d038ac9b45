"""
URL routing for the pickups API.
"""

from django.urls import path
from .views import (
    PickupRequestCancelView,
    PickupRequestDetailView,
    PickupRequestListCreateView,
    PickupRequestStatusView,
    ServiceDetailView,
    ServiceListCreateView,
    ServiceOccurrencesView,
    ServiceToggleActiveView,
)

urlpatterns = [
    path('services/', ServiceListCreateView.as_view(), name='service-list-create'),
    path('services/<int:pk>/', ServiceDetailView.as_view(), name='service-detail'),
    path('services/<int:pk>/toggle-active/', ServiceToggleActiveView.as_view(), name='service-toggle-active'),
    path('services/<int:pk>/occurrences/', ServiceOccurrencesView.as_view(), name='service-occurrences'),
    path('requests/', PickupRequestListCreateView.as_view(), name='request-list-create'),
    path('requests/<int:pk>/', PickupRequestDetailView.as_view(), name='request-detail'),
    path('requests/<int:pk>/cancel/', PickupRequestCancelView.as_view(), name='request-cancel'),
    path('requests/<int:pk>/status/', PickupRequestStatusView.as_view(), name='request-status'),
]
