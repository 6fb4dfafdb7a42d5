"""
Clinic REST backend client for schedules, appointments and reservation fees.
"""

import asyncio
import logging
from datetime import date, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from ..domain.exceptions import (
    AppointmentNotFoundError,
    BookingConflictError,
    ConfigurationError,
    RepositoryError,
)
from ..domain.models import (
    CLINIC_CLOSING_TIME,
    BlockedInterval,
    BookedAppointment,
    TimeWindow,
    WeeklySchedule,
    WeeklyScheduleDay,
)
from ..domain.time_utils import add_minutes, format_time, parse_time, to_minutes

logger = logging.getLogger(__name__)

# The backend stores a weekly plan as discrete start times on this grid
SLOT_STEP_MINUTES = 30


def _unwrap(payload: Any) -> Any:
    """The backend sometimes wraps results as {"data": ...}."""
    if isinstance(payload, dict) and "data" in payload and len(payload) <= 3:
        return payload["data"]
    return payload


def _ref_id(value: Any) -> Optional[str]:
    """Populated references come back as objects, plain ones as ids."""
    if value is None:
        return None
    if isinstance(value, dict):
        return str(value.get("_id") or value.get("id"))
    return str(value)


def fold_time_slots(
    time_slots: List[Dict[str, Any]],
    step_minutes: int = SLOT_STEP_MINUTES,
    closing_time: Optional[time] = CLINIC_CLOSING_TIME,
) -> List[TimeWindow]:
    """
    Convert the backend's discrete working start times into work windows.

    Windows are cut at ``closing_time``: the backend's default plan lists a
    17:00 entry, but no visit may end after the clinic closes.

    Example (30 min step):
    Slots: 08:00, 08:30, 09:00 (off), 09:30, 10:00
    Result: [08:00-09:00, 09:30-10:30]
    """
    starts = sorted(
        parse_time(slot["time"])
        for slot in time_slots
        if slot.get("isWorking", True)
    )

    windows: List[TimeWindow] = []
    run_start: Optional[time] = None
    previous: Optional[time] = None

    for current in starts:
        if run_start is None:
            run_start = current
        elif to_minutes(current) - to_minutes(previous) != step_minutes:
            windows.append(TimeWindow(start=run_start, end=add_minutes(previous, step_minutes)))
            run_start = current
        previous = current

    if run_start is not None:
        windows.append(TimeWindow(start=run_start, end=add_minutes(previous, step_minutes)))

    if closing_time is None:
        return windows
    return [
        TimeWindow(start=w.start, end=min(w.end, closing_time))
        for w in windows
        if w.start < closing_time
    ]


class ClinicApiClient:
    """
    Thin wrapper around ``requests`` for the clinic backend.

    Calls are blocking; the repositories below run them in a worker thread.
    """

    def __init__(self, base_url: str, timeout_seconds: float = 10.0, api_token: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.headers = {"Content-Type": "application/json"}
        if api_token:
            self.headers["Authorization"] = f"Bearer {api_token}"

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return requests.request(
                method,
                url,
                headers=self.headers,
                params=params,
                json=json_body,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise RepositoryError(f"{method} {url} failed: {exc}") from exc

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self.request("GET", path, params=params)
        return self.parse(response)

    @staticmethod
    def parse(response: requests.Response) -> Any:
        try:
            response.raise_for_status()
            return _unwrap(response.json())
        except requests.exceptions.HTTPError as exc:
            raise RepositoryError(f"Backend returned {response.status_code}: {exc}") from exc
        except ValueError as exc:
            raise RepositoryError(f"Backend returned invalid JSON: {exc}") from exc


class HttpScheduleRepository:
    """
    Reads weekly schedules and blocked times from ``/doctor-schedule/{id}``.

    Both parts live in one document. Calls that overlap in time (the schedule
    and block reads of one snapshot) share a single request, so they see the
    same state of the document.
    """

    def __init__(self, client: ClinicApiClient):
        self.client = client
        self._inflight: Dict[str, asyncio.Future] = {}

    async def get_weekly_schedule(self, provider_id: str) -> WeeklySchedule:
        data = await self._document(provider_id)
        return self._parse_weekly_schedule(provider_id, data.get("weeklySchedule") or [])

    async def get_blocked_intervals(
        self,
        provider_id: str,
        start_date: date,
        end_date: date,
    ) -> List[BlockedInterval]:
        data = await self._document(provider_id)
        blocked = [
            BlockedInterval.from_dict(provider_id, item)
            for item in data.get("blockedTimes") or []
        ]
        return [b for b in blocked if b.start_date <= end_date and b.end_date >= start_date]

    async def _document(self, provider_id: str) -> Dict[str, Any]:
        pending = self._inflight.get(provider_id)
        if pending is None:
            pending = asyncio.ensure_future(asyncio.to_thread(self._fetch, provider_id))
            self._inflight[provider_id] = pending
            pending.add_done_callback(lambda _: self._inflight.pop(provider_id, None))
        return await asyncio.shield(pending)

    def _fetch(self, provider_id: str) -> Dict[str, Any]:
        data = self.client.get_json(f"/doctor-schedule/{provider_id}")
        if not isinstance(data, dict):
            raise RepositoryError(f"Unexpected schedule payload for provider {provider_id}")
        return data

    @staticmethod
    def _parse_weekly_schedule(provider_id: str, days: List[Dict[str, Any]]) -> WeeklySchedule:
        """
        Parse the backend's weekly plan.

        Payload format:
        [
            {
                "dayKey": "monday",
                "dayIndex": 1,
                "isWorking": true,
                "timeSlots": [{"time": "08:00", "isWorking": true}, ...]
            }
        ]
        """
        if not days:
            return WeeklySchedule.default(provider_id)

        parsed: List[WeeklyScheduleDay] = []
        for day in days:
            try:
                parsed.append(
                    WeeklyScheduleDay(
                        day_index=int(day["dayIndex"]),
                        is_working=bool(day.get("isWorking", True)),
                        work_windows=tuple(fold_time_slots(day.get("timeSlots") or [])),
                    )
                )
            except (KeyError, ValueError) as exc:
                raise ConfigurationError(f"Malformed schedule day {day!r}: {exc}") from exc

        return WeeklySchedule(provider_id=provider_id, days=tuple(parsed))


class HttpBookingRepository:
    """Appointments through the ``/appointments`` endpoints."""

    def __init__(self, client: ClinicApiClient):
        self.client = client

    async def get_booked_appointments(self, provider_id: str, day: date) -> List[BookedAppointment]:
        items = await asyncio.to_thread(
            self.client.get_json,
            f"/appointments/doctor/{provider_id}",
            {"date": day.isoformat()},
        )
        appointments = []
        for item in items or []:
            # Legacy records without a start time cannot hold a slot
            if isinstance(item, dict) and not (item.get("startTime") or item.get("start_time")):
                logger.warning(
                    "Skipping appointment %s of provider %s without a start time",
                    item.get("_id") or item.get("id"), provider_id,
                )
                continue
            appointments.append(self._parse_appointment(item))
        return [a for a in appointments if a.date == day and a.occupies_slot]

    async def get_appointment(self, appointment_id: str) -> BookedAppointment:
        response = await asyncio.to_thread(self.client.request, "GET", f"/appointments/{appointment_id}")
        if response.status_code == 404:
            raise AppointmentNotFoundError(f"Appointment {appointment_id} not found")
        return self._parse_appointment(self.client.parse(response))

    async def create_booking(
        self,
        provider_id: str,
        day: date,
        start_time: time,
        end_time: time,
        duration_minutes: int,
        patient_id: Optional[str] = None,
    ) -> str:
        payload = {
            "doctorId": provider_id,
            "patientId": patient_id,
            "appointmentDate": day.isoformat(),
            "startTime": format_time(start_time),
            "endTime": format_time(end_time),
            "duration": duration_minutes,
        }
        response = await asyncio.to_thread(self.client.request, "POST", "/appointments", json_body=payload)

        # The backend reports the uniqueness violation as 409 (or 400 on older builds)
        if response.status_code in (400, 409):
            raise BookingConflictError(
                f"Backend rejected booking for {provider_id} on {day.isoformat()} "
                f"at {format_time(start_time)}: {response.text}"
            )

        data = self.client.parse(response)
        booking_id = _ref_id(data.get("_id") or data.get("id")) if isinstance(data, dict) else None
        if not booking_id:
            raise RepositoryError("Backend did not return an appointment id")
        return booking_id

    async def cancel_appointment(self, appointment_id: str, reason: str) -> None:
        response = await asyncio.to_thread(
            self.client.request,
            "DELETE",
            f"/appointments/{appointment_id}/cancel",
            json_body={"reason": reason},
        )
        if response.status_code == 404:
            raise AppointmentNotFoundError(f"Appointment {appointment_id} not found")
        self.client.parse(response)

    @staticmethod
    def _parse_appointment(item: Dict[str, Any]) -> BookedAppointment:
        if not isinstance(item, dict):
            raise RepositoryError(f"Unexpected appointment payload: {item!r}")
        normalized = dict(item)
        normalized["doctorId"] = _ref_id(item.get("doctorId"))
        normalized["patientId"] = _ref_id(item.get("patientId"))
        try:
            return BookedAppointment.from_dict(normalized)
        except ConfigurationError as exc:
            raise RepositoryError(str(exc)) from exc


class HttpBillingGateway:
    """
    Records a reservation fee as two payment documents through ``POST /payments``.

    The patient gets a completed charge with a negative amount, the doctor a
    completed credit with the positive amount, both referencing the original
    appointment. The receipt is the id of the patient charge.
    """

    def __init__(self, client: ClinicApiClient):
        self.client = client

    async def charge_fee(
        self,
        payer_id: str,
        payee_id: str,
        amount: Decimal,
        reference_id: str,
    ) -> str:
        receipt = await asyncio.to_thread(
            self._create_payment, payer_id, payee_id, -amount, reference_id, "Reservation fee charged"
        )
        credit = await asyncio.to_thread(
            self._create_payment, payer_id, payee_id, amount, reference_id, "Reservation fee received"
        )
        logger.debug(
            "Reservation fee %s for %s recorded as %s (credit %s)", amount, reference_id, receipt, credit
        )
        return receipt

    def _create_payment(
        self,
        patient_id: str,
        doctor_id: str,
        amount: Decimal,
        reference_id: str,
        notes: str,
    ) -> str:
        payload = {
            "patientId": patient_id,
            "doctorId": doctor_id,
            "amount": _as_number(amount),
            "status": "completed",
            "type": "appointment",
            "refId": reference_id,
            "refModel": "Appointment",
            "paymentMethod": "reservation_fee",
            "notes": notes,
        }
        data = self.client.parse(self.client.request("POST", "/payments", json_body=payload))

        # The payments endpoint reports failures as {"success": false, "message": ...}
        if isinstance(data, dict) and data.get("success") is False:
            raise RepositoryError(f"Billing backend rejected payment: {data.get('message')}")
        payment_id = _ref_id(data.get("_id") or data.get("id")) if isinstance(data, dict) else None
        if not payment_id:
            raise RepositoryError("Billing backend did not return a payment id")
        return payment_id


def _as_number(amount: Decimal):
    """JSON number for a money amount; whole VND amounts stay integers."""
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)
