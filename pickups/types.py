"""
Data types and constants for the pickup scheduling system.

This module contains:
- DTOs (Data Transfer Objects) for service layer operations
- Constants used across the application
"""

from dataclasses import dataclass, field
from typing import List, Optional
from datetime import date, time


DEFAULT_CUTOFF_HOURS = 1
DEFAULT_CANCEL_CUTOFF_HOURS = 2
DEFAULT_MAX_RECURRING_MONTHS = 3
DEFAULT_RESTORE_COOLDOWN_HOURS = 24
DEFAULT_PREVIEW_COUNT = 5


@dataclass
class RequestData:
    """DTO for request create and update operations."""
    service_id: int
    day_of_week: int
    address_id: int
    request_date: date
    user_id: Optional[int] = None
    is_recurring: bool = False
    end_date: Optional[date] = None
    is_pick_up: bool = True
    is_drop_off: bool = False
    is_group_ride: bool = False
    number_of_group: Optional[int] = None
    notes: Optional[str] = None

    def detail_fields(self) -> dict:
        """Fields copied onto every row, apart from the date and service."""
        return {
            'address_id': self.address_id,
            'is_pick_up': self.is_pick_up,
            'is_drop_off': self.is_drop_off,
            'is_group_ride': self.is_group_ride,
            'number_of_group': self.number_of_group,
            'notes': self.notes or None,
        }


@dataclass
class ServiceData:
    """DTO for service creation."""
    name: str
    time_of_day: time
    weekdays: List[int] = field(default_factory=list)
    category: str = 'RECURRING'
    frequency: str = 'WEEKLY'
    ordinal: str = 'NEXT'
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool = True


@dataclass
class ServiceUpdateData:
    """DTO for service update operations."""
    name: Optional[str] = None
    time_of_day: Optional[time] = None
    weekdays: Optional[List[int]] = None
    category: Optional[str] = None
    frequency: Optional[str] = None
    ordinal: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
