"""
Shared enumerations for coachbill models and services.
"""

from enum import Enum


class Environment(str, Enum):
    """Stripe environment. Credentials and data are fully isolated per value."""
    TEST = "test"
    LIVE = "live"


class SessionStatus(str, Enum):
    """Review / approval / billing lifecycle of a coaching session."""
    UNDER_REVIEW = "Under Review"   # Initial state after a coach logs it
    APPROVED = "Approved"           # Admin approved; chargeable
    DENIED = "Denied"               # Admin denied; can be reopened
    BILLED = "Billed"               # Charged successfully


class SessionAction(str, Enum):
    APPROVE = "approve"
    DENY = "deny"
    RETURN_TO_REVIEW = "return_to_review"
    UNDO_DENY = "undo_deny"
    BILL = "bill"
    UNDO_BILL = "undo_bill"


class UserRole(str, Enum):
    ADMIN = "admin"
    SUPER_ADMIN = "super-admin"
    COACH = "coach"
    CLIENT = "client"
    BILLING = "billing"


class BillingOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ChargeLockState(str, Enum):
    HELD = "held"         # A charge attempt is in flight
    UNKNOWN = "unknown"   # Processor outcome could not be confirmed
