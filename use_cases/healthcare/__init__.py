"""
Healthcare Use Case.

Appointment booking with doctors and clinics, and ambulance dispatch requests.

Usage:
    from use_cases.healthcare import BookingService

    bookings = BookingService(store)
    appointment = await bookings.book_appointment(patient_id, doctor_id=doctor_id)
"""

from use_cases.healthcare.booking import BookingService
from use_cases.healthcare.domain import BookingError

__all__ = [
    "BookingService",
    "BookingError",
]
