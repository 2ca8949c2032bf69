"""Enumeration types used throughout the receipt core.

Enumerations constrain the values that can be stored in the database
or passed between the core and the application layer.  When modifying
these enums update the corresponding database columns and the
transition table in ``schemas`` so that new values are accepted where
appropriate.
"""

from enum import Enum


class ReceiptStatus(str, Enum):
    """Processing states for a receipt."""

    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class ThresholdType(str, Enum):
    """Period a tenant's spending threshold applies to."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    SEASON = "season"
    YEARLY = "yearly"


class GroupingBucket(str, Enum):
    """Calendar bucket used when grouping receipts by date."""

    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class WeekStart(str, Enum):
    """First day of the calendar week."""

    SUNDAY = "sunday"
    MONDAY = "monday"
