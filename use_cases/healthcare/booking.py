"""
Appointment booking and ambulance dispatch requests.

Validation happens in the domain builders before any backend call; the
service only persists and reads records.
"""

import logging
from typing import Any, Dict, List, Optional

from core.data import BackendError, QueryOptions, RecordStore, with_timeout

from .domain.services import (
    AmbulanceRequest,
    AmbulanceRequestBuilder,
    AppointmentRequest,
    AppointmentRequestBuilder,
    BookingError,
    ambulance_transitions,
    appointment_transitions,
)

logger = logging.getLogger(__name__)


class BookingService:
    """Creates and tracks appointments and ambulance requests."""

    def __init__(self, store: RecordStore, timeout_seconds: Optional[float] = None):
        self._store = store
        self._timeout = timeout_seconds
        self._appointments = AppointmentRequestBuilder()
        self._ambulances = AmbulanceRequestBuilder()

    # =========================================================================
    # APPOINTMENTS
    # =========================================================================

    async def book_appointment(
        self,
        patient_id: str,
        doctor_id: Optional[str] = None,
        clinic_id: Optional[str] = None,
        appointment_date: Any = None,
        appointment_time: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AppointmentRequest:
        """
        Request an appointment with a doctor or a clinic.

        Raises:
            BookingError: invalid request or backend failure
        """
        request = self._appointments.execute(
            patient_id=patient_id,
            doctor_id=doctor_id,
            clinic_id=clinic_id,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            notes=notes,
        )
        await self._insert("appointments", request.to_dict(), "Failed to book appointment. Please try again.")
        logger.info(f"Appointment {request.id} requested by {patient_id}")
        return request

    async def list_appointments(self, patient_id: str) -> List[Dict[str, Any]]:
        return await self._list(
            "appointments",
            QueryOptions(filters={"patient_id": patient_id}, order_by="appointment_date", order_desc=True),
        )

    async def update_appointment_status(self, appointment_id: str, current: str, target: str):
        await self._transition("appointments", appointment_transitions, appointment_id, current, target)

    # =========================================================================
    # AMBULANCE REQUESTS
    # =========================================================================

    async def request_ambulance(
        self,
        patient_id: str,
        pickup_location: str,
        destination: str = "",
        emergency_type: str = "",
    ) -> AmbulanceRequest:
        """
        Submit an emergency transport request.

        Raises:
            BookingError: invalid request or backend failure
        """
        request = self._ambulances.execute(
            patient_id=patient_id,
            pickup_location=pickup_location,
            destination=destination,
            emergency_type=emergency_type,
        )
        await self._insert("ambulance_requests", request.to_dict(), "Failed to request ambulance. Please try again.")
        logger.info(f"Ambulance request {request.id} submitted by {patient_id}")
        return request

    async def list_ambulance_requests(self, patient_id: str) -> List[Dict[str, Any]]:
        return await self._list(
            "ambulance_requests",
            QueryOptions(filters={"patient_id": patient_id}, order_by="created_at", order_desc=True),
        )

    async def update_ambulance_status(
        self,
        request_id: str,
        current: str,
        target: str,
        driver_id: Optional[str] = None,
    ):
        extra = {"driver_id": driver_id} if driver_id else {}
        await self._transition("ambulance_requests", ambulance_transitions, request_id, current, target, extra)

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _insert(self, table: str, record: Dict[str, Any], failure_message: str):
        result = await with_timeout(self._store.insert(table, [record]), self._timeout, f"{table} insert")
        if not result.ok:
            logger.error(f"Error inserting into {table}: {result.error.message}")
            raise BookingError(failure_message)

    async def _list(self, table: str, options: QueryOptions) -> List[Dict[str, Any]]:
        result = await with_timeout(self._store.select(table, options), self._timeout, f"{table} query")
        if result.not_configured:
            return []
        return result.unwrap() or []

    async def _transition(self, table, policy, record_id, current, target, extra=None):
        decision = policy.evaluate({"current": current, "target": target})
        if decision.is_denied:
            raise BookingError(decision.reason)
        values = {"status": target}
        values.update(extra or {})
        result = await with_timeout(
            self._store.update(table, values, {"id": record_id, "status": current}),
            self._timeout,
            f"{table} update",
        )
        if not result.ok:
            raise BookingError(f"Could not update status: {result.error.message}")
        if not result.data:
            raise BookingError(f"Record {record_id} is no longer {current}")
