# backend/slotwise/core/enums.py
"""
Core enums for the Slotwise platform.

Roles mirror the account directory; actions are the verbs the access policy
is asked about.
"""

from enum import Enum


class RoleName(str, Enum):
    """Actor roles resolved from the account directory."""

    ADMIN = "ADMIN"
    BUSINESS_OWNER = "BUSINESS_OWNER"
    WORKER = "WORKER"
    CLIENT = "CLIENT"


class BookingAction(str, Enum):
    """Operations an actor may attempt on a booking."""

    READ = "read"
    CREATE = "create"
    RESCHEDULE = "reschedule"
    COMPLETE = "complete"
    CANCEL = "cancel"
    MARK_NO_SHOW = "mark_no_show"


class CaptureStatus(str, Enum):
    """Payment gateway capture status for an intent."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
