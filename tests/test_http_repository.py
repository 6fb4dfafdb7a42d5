"""
Tests for the clinic backend adapters, with ``requests`` patched out.
"""

import asyncio
import logging
from datetime import date, time
from decimal import Decimal
from typing import Any, Dict, List

import pytest
import requests

from clinicschedule.adapters.http_repository import (
    ClinicApiClient,
    HttpBillingGateway,
    HttpBookingRepository,
    HttpScheduleRepository,
    fold_time_slots,
)
from clinicschedule.domain.exceptions import (
    AppointmentNotFoundError,
    BookingConflictError,
    RepositoryError,
)
from clinicschedule.domain.models import AppointmentStatus, BlockKind, TimeWindow


MONDAY = date(2025, 12, 15)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")


@pytest.fixture
def backend(monkeypatch):
    """Route ``requests.request`` to canned responses keyed by (method, path)."""
    calls: List[Dict[str, Any]] = []
    routes: Dict[tuple, FakeResponse] = {}

    def fake_request(method, url, **kwargs):
        path = url.replace("http://clinic.test/api", "")
        calls.append({"method": method, "path": path, **kwargs})
        return routes[(method, path)]

    monkeypatch.setattr(requests, "request", fake_request)
    return routes, calls


def _client() -> ClinicApiClient:
    return ClinicApiClient("http://clinic.test/api/", timeout_seconds=5, api_token="secret")


class TestFoldTimeSlots:
    """Tests for turning backend start times into work windows."""

    def test_contiguous_runs_become_windows(self):
        slots = [
            {"time": "08:00", "isWorking": True},
            {"time": "08:30", "isWorking": True},
            {"time": "09:00", "isWorking": False},
            {"time": "09:30", "isWorking": True},
            {"time": "10:00", "isWorking": True},
        ]

        assert fold_time_slots(slots) == [
            TimeWindow.parse("08:00", "09:00"),
            TimeWindow.parse("09:30", "10:30"),
        ]

    def test_unsorted_input(self):
        slots = [{"time": "13:30"}, {"time": "08:00"}, {"time": "13:00"}]

        assert fold_time_slots(slots) == [
            TimeWindow.parse("08:00", "08:30"),
            TimeWindow.parse("13:00", "14:00"),
        ]

    def test_default_backend_plan_closes_at_five(self):
        # 08:00 .. 17:00 inclusive, as the backend creates for a new doctor
        slots = [{"time": f"{h:02d}:{m:02d}"} for h in range(8, 17) for m in (0, 30)] + [{"time": "17:00"}]

        assert fold_time_slots(slots) == [TimeWindow.parse("08:00", "17:00")]

    def test_window_starting_at_closing_is_dropped(self):
        slots = [{"time": "16:30"}, {"time": "17:00"}, {"time": "17:30"}]

        assert fold_time_slots(slots) == [TimeWindow.parse("16:30", "17:00")]
        assert fold_time_slots(slots, closing_time=None) == [TimeWindow.parse("16:30", "18:00")]

    def test_empty(self):
        assert fold_time_slots([]) == []


class TestClient:

    def test_base_url_and_auth_header(self, backend):
        routes, calls = backend
        routes[("GET", "/ping")] = FakeResponse(payload={"data": {"ok": True}})

        result = _client().get_json("/ping")

        assert result == {"ok": True}
        assert calls[0]["headers"]["Authorization"] == "Bearer secret"
        assert calls[0]["timeout"] == 5

    def test_transport_error_becomes_repository_error(self, monkeypatch):
        def boom(method, url, **kwargs):
            raise requests.exceptions.ConnectionError("refused")

        monkeypatch.setattr(requests, "request", boom)

        with pytest.raises(RepositoryError, match="refused"):
            _client().get_json("/ping")

    def test_http_error_becomes_repository_error(self, backend):
        routes, _ = backend
        routes[("GET", "/ping")] = FakeResponse(status_code=500, payload={})

        with pytest.raises(RepositoryError, match="500"):
            _client().get_json("/ping")


class TestHttpScheduleRepository:

    def test_weekly_schedule_and_blocks(self, backend):
        routes, _ = backend
        routes[("GET", "/doctor-schedule/dr-lan")] = FakeResponse(
            payload={
                "weeklySchedule": [
                    {"dayKey": "sunday", "dayIndex": 0, "isWorking": False, "timeSlots": []},
                    {
                        "dayKey": "monday",
                        "dayIndex": 1,
                        "isWorking": True,
                        "timeSlots": [{"time": "08:00"}, {"time": "08:30"}, {"time": "13:00"}],
                    },
                ],
                "blockedTimes": [
                    {"id": "b1", "type": "full_day", "startDate": "2025-12-15", "endDate": "2025-12-15"},
                    {"id": "b2", "type": "full_day", "startDate": "2026-01-01", "endDate": "2026-01-01"},
                ],
            }
        )
        repository = HttpScheduleRepository(_client())

        schedule = asyncio.run(repository.get_weekly_schedule("dr-lan"))
        blocked = asyncio.run(repository.get_blocked_intervals("dr-lan", MONDAY, MONDAY))

        assert schedule.windows_for(MONDAY) == (
            TimeWindow.parse("08:00", "09:00"),
            TimeWindow.parse("13:00", "13:30"),
        )
        assert schedule.windows_for(date(2025, 12, 14)) == ()
        assert [b.id for b in blocked] == ["b1"]
        assert blocked[0].kind is BlockKind.FULL_DAY

    def test_snapshot_reads_share_one_request(self, backend):
        routes, calls = backend
        routes[("GET", "/doctor-schedule/dr-lan")] = FakeResponse(
            payload={
                "weeklySchedule": [],
                "blockedTimes": [
                    {"id": "b1", "type": "full_day", "startDate": "2025-12-15", "endDate": "2025-12-15"},
                ],
            }
        )
        repository = HttpScheduleRepository(_client())

        async def read_both():
            return await asyncio.gather(
                repository.get_weekly_schedule("dr-lan"),
                repository.get_blocked_intervals("dr-lan", MONDAY, MONDAY),
            )

        schedule, blocked = asyncio.run(read_both())

        assert len(calls) == 1
        assert schedule.windows_for(MONDAY) == (TimeWindow.parse("08:00", "17:00"),)
        assert [b.id for b in blocked] == ["b1"]

    def test_failed_read_is_not_reused(self, backend):
        routes, calls = backend
        routes[("GET", "/doctor-schedule/dr-lan")] = FakeResponse(status_code=503, payload={})
        repository = HttpScheduleRepository(_client())

        with pytest.raises(RepositoryError):
            asyncio.run(repository.get_weekly_schedule("dr-lan"))

        routes[("GET", "/doctor-schedule/dr-lan")] = FakeResponse(payload={"weeklySchedule": []})
        schedule = asyncio.run(repository.get_weekly_schedule("dr-lan"))

        assert len(calls) == 2
        assert schedule.windows_for(MONDAY) == (TimeWindow.parse("08:00", "17:00"),)

    def test_missing_plan_falls_back_to_default(self, backend):
        routes, _ = backend
        routes[("GET", "/doctor-schedule/dr-minh")] = FakeResponse(payload={"weeklySchedule": []})

        schedule = asyncio.run(HttpScheduleRepository(_client()).get_weekly_schedule("dr-minh"))

        assert schedule.windows_for(MONDAY) == (TimeWindow.parse("08:00", "17:00"),)


class TestHttpBookingRepository:

    def test_booked_appointments_filters_cancelled(self, backend):
        routes, calls = backend
        routes[("GET", "/appointments/doctor/dr-lan")] = FakeResponse(
            payload=[
                {
                    "_id": "a1",
                    "doctorId": {"_id": "dr-lan", "name": "Lan"},
                    "patientId": "pt-1",
                    "appointmentDate": "2025-12-15T00:00:00.000Z",
                    "startTime": "10:00",
                    "endTime": "10:30",
                    "status": "confirmed",
                },
                {
                    "_id": "a2",
                    "doctorId": "dr-lan",
                    "appointmentDate": "2025-12-15",
                    "startTime": "11:00",
                    "status": "cancelled",
                },
            ]
        )

        appointments = asyncio.run(HttpBookingRepository(_client()).get_booked_appointments("dr-lan", MONDAY))

        assert [a.id for a in appointments] == ["a1"]
        assert appointments[0].provider_id == "dr-lan"
        assert appointments[0].status is AppointmentStatus.CONFIRMED
        assert calls[0]["params"] == {"date": "2025-12-15"}

    def test_appointment_without_start_time_is_skipped(self, backend, caplog):
        routes, _ = backend
        routes[("GET", "/appointments/doctor/dr-lan")] = FakeResponse(
            payload=[
                {"_id": "a1", "doctorId": "dr-lan", "appointmentDate": "2025-12-15", "status": "confirmed"},
                {
                    "_id": "a2",
                    "doctorId": "dr-lan",
                    "appointmentDate": "2025-12-15",
                    "startTime": "11:00",
                    "status": "pending",
                },
            ]
        )

        with caplog.at_level(logging.WARNING, logger="clinicschedule.adapters.http_repository"):
            appointments = asyncio.run(
                HttpBookingRepository(_client()).get_booked_appointments("dr-lan", MONDAY)
            )

        assert [a.id for a in appointments] == ["a2"]
        assert "Skipping appointment a1" in caplog.text

    def test_create_booking(self, backend):
        routes, calls = backend
        routes[("POST", "/appointments")] = FakeResponse(status_code=201, payload={"data": {"_id": "apt-9"}})

        booking_id = asyncio.run(
            HttpBookingRepository(_client()).create_booking(
                "dr-lan", MONDAY, time(9, 0), time(9, 30), 30, patient_id="pt-1"
            )
        )

        assert booking_id == "apt-9"
        assert calls[0]["json"]["startTime"] == "09:00"
        assert calls[0]["json"]["appointmentDate"] == "2025-12-15"

    @pytest.mark.parametrize("status_code", [400, 409])
    def test_create_booking_conflict(self, backend, status_code):
        routes, _ = backend
        routes[("POST", "/appointments")] = FakeResponse(status_code=status_code, text="duplicate key")

        with pytest.raises(BookingConflictError, match="duplicate key"):
            asyncio.run(
                HttpBookingRepository(_client()).create_booking("dr-lan", MONDAY, time(9, 0), time(9, 30), 30)
            )

    def test_get_missing_appointment(self, backend):
        routes, _ = backend
        routes[("GET", "/appointments/nope")] = FakeResponse(status_code=404)

        with pytest.raises(AppointmentNotFoundError):
            asyncio.run(HttpBookingRepository(_client()).get_appointment("nope"))

    def test_cancel_appointment(self, backend):
        routes, calls = backend
        routes[("DELETE", "/appointments/a1/cancel")] = FakeResponse(payload={"success": True})

        asyncio.run(HttpBookingRepository(_client()).cancel_appointment("a1", "Rescheduled"))

        assert calls[0]["json"] == {"reason": "Rescheduled"}


class TestHttpBillingGateway:

    def test_charge_fee_records_charge_and_credit(self, backend):
        routes, calls = backend
        routes[("POST", "/payments")] = FakeResponse(
            status_code=201,
            payload={"success": True, "data": {"_id": "pay-1"}, "message": "Payment created"},
        )

        receipt = asyncio.run(
            HttpBillingGateway(_client()).charge_fee("pt-1", "dr-lan", Decimal("50000"), "a1")
        )

        assert receipt == "pay-1"
        assert [c["path"] for c in calls] == ["/payments", "/payments"]
        assert [c["json"]["amount"] for c in calls] == [-50000, 50000]
        for call in calls:
            assert call["json"]["patientId"] == "pt-1"
            assert call["json"]["doctorId"] == "dr-lan"
            assert call["json"]["refId"] == "a1"
            assert call["json"]["refModel"] == "Appointment"
            assert call["json"]["type"] == "appointment"
            assert call["json"]["status"] == "completed"

    def test_rejected_payment(self, backend):
        routes, _ = backend
        routes[("POST", "/payments")] = FakeResponse(payload={"success": False, "message": "Invalid patient"})

        with pytest.raises(RepositoryError, match="Invalid patient"):
            asyncio.run(HttpBillingGateway(_client()).charge_fee("pt-1", "dr-lan", Decimal("50000"), "a1"))

    def test_missing_payment_id(self, backend):
        routes, _ = backend
        routes[("POST", "/payments")] = FakeResponse(payload={"success": True, "data": {}})

        with pytest.raises(RepositoryError, match="payment id"):
            asyncio.run(HttpBillingGateway(_client()).charge_fee("pt-1", "dr-lan", Decimal("50000"), "a1"))
