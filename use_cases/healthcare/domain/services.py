"""
Healthcare Domain Services.

Builders that turn user input into validated appointment and ambulance
requests. These have NO I/O dependencies - pure validation and defaults.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from core.domain import DomainService

from .policies import (
    AMBULANCE_TRANSITIONS,
    APPOINTMENT_TRANSITIONS,
    DEFAULT_APPOINTMENT_NOTES,
    DEFAULT_APPOINTMENT_TIME,
    AmbulanceRequestValidator,
    AppointmentRequestValidator,
    BookingWindowPolicy,
    StatusTransitionPolicy,
    parse_appointment_date,
)


class BookingError(Exception):
    """A booking or dispatch request was rejected."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or [message]


# =============================================================================
# REQUESTS
# =============================================================================

@dataclass
class AppointmentRequest:
    """A validated appointment ready to be persisted."""
    patient_id: str
    appointment_date: date
    appointment_time: str
    doctor_id: Optional[str] = None
    clinic_id: Optional[str] = None
    notes: str = ""
    status: str = "pending"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "doctor_id": self.doctor_id,
            "clinic_id": self.clinic_id,
            "appointment_date": self.appointment_date.isoformat(),
            "appointment_time": self.appointment_time,
            "status": self.status,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.created_at.isoformat(),
        }


@dataclass
class AmbulanceRequest:
    """A validated emergency transport request."""
    patient_id: str
    pickup_location: str
    destination: str = ""
    emergency_type: str = ""
    status: str = "pending"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "driver_id": None,
            "pickup_location": self.pickup_location,
            "destination": self.destination,
            "emergency_type": self.emergency_type,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.created_at.isoformat(),
        }


# =============================================================================
# BUILDERS
# =============================================================================

class AppointmentRequestBuilder(DomainService):
    """
    Builds a validated appointment request.

    Without an explicit date and time the appointment is requested for the
    next day at 10:00 as a general consultation.
    """

    def __init__(self):
        self.validator = AppointmentRequestValidator()
        self.window_policy = BookingWindowPolicy()

    def execute(
        self,
        patient_id: str,
        doctor_id: Optional[str] = None,
        clinic_id: Optional[str] = None,
        appointment_date: Any = None,
        appointment_time: Optional[str] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> AppointmentRequest:
        today = today or datetime.now(timezone.utc).date()
        if appointment_date is None:
            appointment_date = today + timedelta(days=1)

        data = {
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            "clinic_id": clinic_id,
            "appointment_date": appointment_date,
            "appointment_time": appointment_time or DEFAULT_APPOINTMENT_TIME,
        }
        errors = self.validator.validate(data)
        if errors:
            raise BookingError(errors[0].message, [e.message for e in errors])

        parsed_date = parse_appointment_date(appointment_date)
        decision = self.window_policy.evaluate({"appointment_date": parsed_date, "today": today})
        if decision.is_denied:
            raise BookingError(decision.reason)

        return AppointmentRequest(
            patient_id=patient_id,
            doctor_id=doctor_id,
            clinic_id=clinic_id,
            appointment_date=parsed_date,
            appointment_time=data["appointment_time"],
            notes=notes if notes is not None else DEFAULT_APPOINTMENT_NOTES,
        )


class AmbulanceRequestBuilder(DomainService):
    """Builds a validated ambulance request."""

    def __init__(self):
        self.validator = AmbulanceRequestValidator()

    def execute(
        self,
        patient_id: str,
        pickup_location: str,
        destination: str = "",
        emergency_type: str = "",
    ) -> AmbulanceRequest:
        errors = self.validator.validate({
            "patient_id": patient_id,
            "pickup_location": pickup_location,
        })
        if errors:
            raise BookingError(errors[0].message, [e.message for e in errors])

        return AmbulanceRequest(
            patient_id=patient_id,
            pickup_location=pickup_location.strip(),
            destination=(destination or "").strip(),
            emergency_type=emergency_type or "",
        )


appointment_transitions = StatusTransitionPolicy(APPOINTMENT_TRANSITIONS)
ambulance_transitions = StatusTransitionPolicy(AMBULANCE_TRANSITIONS)
