"""
Healthcare Domain Layer.

Pure business logic for appointment booking and ambulance requests.
"""

from .policies import (
    APPOINTMENT_STATUSES,
    AMBULANCE_STATUSES,
    BookingWindowPolicy,
    StatusTransitionPolicy,
)
from .services import (
    AmbulanceRequest,
    AmbulanceRequestBuilder,
    AppointmentRequest,
    AppointmentRequestBuilder,
    BookingError,
)

__all__ = [
    "APPOINTMENT_STATUSES",
    "AMBULANCE_STATUSES",
    "BookingWindowPolicy",
    "StatusTransitionPolicy",
    "AmbulanceRequest",
    "AmbulanceRequestBuilder",
    "AppointmentRequest",
    "AppointmentRequestBuilder",
    "BookingError",
]
