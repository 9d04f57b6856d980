"""
Healthcare Domain Policies.

Pure business rules for appointment booking and ambulance dispatch requests.
These classes have NO I/O dependencies - they can be unit tested in isolation.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from core.domain import (
    PolicyDecision,
    PolicyEngine,
    PolicyResult,
    ValidationError,
    Validator,
)


# =============================================================================
# CONSTANTS
# =============================================================================

# Maximum days in advance for booking
MAX_ADVANCE_DAYS = 90

DEFAULT_APPOINTMENT_TIME = "10:00"
DEFAULT_APPOINTMENT_NOTES = "General consultation"

APPOINTMENT_STATUSES = ["pending", "confirmed", "completed", "cancelled"]

AMBULANCE_STATUSES = ["pending", "assigned", "en_route", "arrived", "completed", "cancelled"]

# Allowed status changes (current -> next)
APPOINTMENT_TRANSITIONS = {
    "pending": ["confirmed", "cancelled"],
    "confirmed": ["completed", "cancelled"],
    "completed": [],
    "cancelled": [],
}

AMBULANCE_TRANSITIONS = {
    "pending": ["assigned", "cancelled"],
    "assigned": ["en_route", "cancelled"],
    "en_route": ["arrived", "cancelled"],
    "arrived": ["completed"],
    "completed": [],
    "cancelled": [],
}

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_appointment_date(value: Any) -> Optional[date]:
    """Accept a date, a datetime or a YYYY-MM-DD string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            return None
    return None


# =============================================================================
# POLICY ENGINES
# =============================================================================

class BookingWindowPolicy(PolicyEngine):
    """
    When an appointment may be booked.

    Context required:
        - appointment_date: date of the appointment
        - today: the current date
    """

    def __init__(self, max_advance_days: int = MAX_ADVANCE_DAYS):
        self.max_advance_days = max_advance_days

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        requested = context["appointment_date"]
        today = context["today"]

        if requested < today:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason="Appointments cannot be booked in the past",
            )

        days_ahead = (requested - today).days
        if days_ahead > self.max_advance_days:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason=f"Appointments can be booked at most {self.max_advance_days} days in advance",
                metadata={"days_ahead": days_ahead},
            )

        return PolicyDecision(
            result=PolicyResult.APPROVED,
            reason="Date is within the booking window",
            metadata={"days_ahead": days_ahead},
        )


class StatusTransitionPolicy(PolicyEngine):
    """Checks a status change against a transition table."""

    def __init__(self, transitions: Dict[str, List[str]]):
        self.transitions = transitions

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        current = context.get("current")
        target = context.get("target")
        if target not in self.transitions:
            return PolicyDecision(result=PolicyResult.DENIED, reason=f"Unknown status: {target}")
        if target not in self.transitions.get(current, []):
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason=f"Cannot change status from {current} to {target}",
            )
        return PolicyDecision(result=PolicyResult.APPROVED, reason=f"{current} -> {target}")


# =============================================================================
# VALIDATORS
# =============================================================================

class AppointmentRequestValidator(Validator):
    """Validates the fields of an appointment booking."""

    def validate(self, data: Dict[str, Any]) -> List[ValidationError]:
        errors = []
        if not data.get("patient_id"):
            errors.append(ValidationError("patient_id", "Please login to book an appointment", "required"))
        if not data.get("doctor_id") and not data.get("clinic_id"):
            errors.append(ValidationError("doctor_id", "Please choose a doctor or a clinic", "required"))
        if parse_appointment_date(data.get("appointment_date")) is None:
            errors.append(ValidationError("appointment_date", "Please choose a valid date"))
        if not TIME_PATTERN.match(str(data.get("appointment_time") or "")):
            errors.append(ValidationError("appointment_time", "Please choose a valid time (HH:MM)"))
        return errors


class AmbulanceRequestValidator(Validator):
    """Validates an emergency transport request."""

    def validate(self, data: Dict[str, Any]) -> List[ValidationError]:
        errors = []
        if not data.get("patient_id"):
            errors.append(ValidationError("patient_id", "Please login to request ambulance service", "required"))
        if not str(data.get("pickup_location") or "").strip():
            errors.append(ValidationError("pickup_location", "Please provide pickup location", "required"))
        return errors
