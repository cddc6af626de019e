"""
Tests for RestStore against a stubbed requests session.
"""

import asyncio
import json
from datetime import date, time

import pendulum
import pytest
import requests

from consultslot.adapters.rest_store import RestStore
from consultslot.config import StoreSettings
from consultslot.domain.exceptions import (
    CapacityExceeded,
    ConsistencyError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from consultslot.domain.models import Booking, BookingStatus

MONDAY = date(2025, 6, 23)


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.content = b"" if body is None else json.dumps(body).encode()
        self.text = self.content.decode()

    def json(self):
        return json.loads(self.content)


class FakeSession:
    """Records calls and replays queued responses per (method, table)."""

    def __init__(self):
        self.headers = {}
        self.calls = []
        self.routes = {}

    def route(self, method, table, *responses):
        self.routes.setdefault((method, table), []).extend(responses)

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        table = url.rsplit("/", 1)[-1]
        self.calls.append({"method": method, "table": table, "params": params, "json": json,
                           "headers": headers, "timeout": timeout})
        queued = self.routes.get((method, table))
        if not queued:
            return FakeResponse(200, [])
        result = queued.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def store(session):
    settings = StoreSettings(url="https://db.example.co/", api_key="key", schema="booking", timeout_seconds=3)
    return RestStore(settings, session=session)


def run(coro):
    return asyncio.run(coro)


class TestRestStoreSetup:
    """Tests for client configuration."""

    def test_missing_url(self):
        with pytest.raises(ValueError, match="store.url"):
            RestStore(StoreSettings())

    def test_headers_and_base_url(self, store, session):
        assert store.base_url == "https://db.example.co/rest/v1"
        assert session.headers["apikey"] == "key"
        assert session.headers["Authorization"] == "Bearer key"
        assert session.headers["Accept-Profile"] == "booking"

    def test_requests_carry_timeout(self, store, session):
        run(store.consultant_exists("alice"))

        assert session.calls[0]["timeout"] == 3


class TestRestStoreReads:
    """Tests for rule, catalog and ledger reads."""

    def test_consultant_exists(self, store, session):
        session.route("GET", "profiles", FakeResponse(200, [{"id": "alice"}]))

        assert run(store.consultant_exists("alice"))
        assert session.calls[0]["params"]["id"] == "eq.alice"
        assert not run(store.consultant_exists("mallory"))

    def test_templates_parse_postgres_times(self, store, session):
        session.route("GET", "availability_templates", FakeResponse(200, [{
            "id": "t1", "consultant_id": "alice", "day_of_week": 1,
            "start_time": "09:00:00", "end_time": "17:00:00",
            "max_bookings": 2, "timezone": "Europe/Berlin", "is_active": True,
        }]))

        templates = run(store.get_templates("alice"))

        assert len(templates) == 1
        assert templates[0].start_time == time(9, 0)
        assert templates[0].end_time == time(17, 0)
        assert templates[0].max_bookings == 2

    def test_breaks_filter_weekday_or_date(self, store, session):
        run(store.get_breaks("alice", MONDAY))

        assert session.calls[0]["params"]["or"] == "(day_of_week.eq.1,specific_date.eq.2025-06-23)"

    def test_time_off_filters_range(self, store, session):
        session.route("GET", "availability_timeoff", FakeResponse(200, [{
            "consultant_id": "alice", "start_date": "2025-06-20", "end_date": "2025-06-27",
            "start_time": None, "end_time": None, "timeoff_type": "conference", "is_approved": True,
        }]))

        time_off = run(store.get_time_off("alice", MONDAY))

        assert time_off[0].is_full_day
        assert time_off[0].covers(MONDAY)
        assert session.calls[0]["params"]["start_date"] == "lte.2025-06-23"
        assert session.calls[0]["params"]["end_date"] == "gte.2025-06-23"

    def test_service_default_advance(self, store, session):
        session.route("GET", "services", FakeResponse(200, [{"id": "intro", "duration_minutes": 30}]))

        service = run(store.get_service("intro"))

        assert service.minimum_advance_hours == 24
        assert run(store.get_service("missing")) is None

    def test_bookings_use_embedded_service_and_preference(self, store, session):
        session.route("GET", "bookings", FakeResponse(200, [{
            "id": "b1", "consultant_id": "alice", "service_id": "intro",
            "scheduled_date": "2025-06-23", "scheduled_time": "09:00:00", "status": "confirmed",
            "service": {"id": "intro", "duration_minutes": 30, "buffer_after_minutes": 15},
        }]))
        session.route("GET", "consultant_buffer_preferences", FakeResponse(200, [{
            "consultant_id": "alice", "service_id": "intro", "buffer_before_minutes": 5, "buffer_after_minutes": 0,
        }]))

        entries = run(store.get_bookings_on("alice", MONDAY))

        assert entries[0].booking.status is BookingStatus.CONFIRMED
        assert entries[0].service.buffer_before_minutes == 5
        assert entries[0].service.buffer_after_minutes == 0
        assert session.calls[0]["params"]["status"] == "in.(pending,confirmed)"

    def test_booking_without_embedded_service(self, store, session):
        session.route("GET", "bookings", FakeResponse(200, [{
            "id": "b1", "consultant_id": "alice", "service_id": "intro",
            "scheduled_date": "2025-06-23", "scheduled_time": "09:00:00", "status": "confirmed",
        }]))

        with pytest.raises(ConsistencyError, match="embedded service"):
            run(store.get_bookings_on("alice", MONDAY))

    @pytest.mark.parametrize(
        "row",
        [
            {"id": "intro", "duration_minutes": -30},
            {"id": "intro"},
            {"id": "intro", "duration_minutes": "half an hour"},
        ],
    )
    def test_malformed_rows(self, store, session, row):
        session.route("GET", "services", FakeResponse(200, [row]))

        with pytest.raises(ConsistencyError):
            run(store.get_service("intro"))


class TestRestStoreErrors:
    """Tests for HTTP and network failure mapping."""

    @pytest.mark.parametrize(
        "failure",
        [requests.exceptions.Timeout("read timed out"), requests.exceptions.ConnectionError("refused")],
    )
    def test_network_failures_are_transient(self, store, session, failure):
        session.route("GET", "profiles", failure)

        with pytest.raises(TransientError):
            run(store.consultant_exists("alice"))

    def test_server_error_is_transient(self, store, session):
        session.route("GET", "services", FakeResponse(503, {"message": "unavailable"}))

        with pytest.raises(TransientError):
            run(store.get_service("intro"))

    def test_client_error_is_consistency_error(self, store, session):
        session.route("GET", "services", FakeResponse(400, {"message": "bad filter"}))

        with pytest.raises(ConsistencyError):
            run(store.get_service("intro"))

    def test_non_list_body(self, store, session):
        session.route("GET", "services", FakeResponse(200, "nope"))

        with pytest.raises(ConsistencyError):
            run(store.get_service("intro"))


class TestRestStoreWrites:
    """Tests for inserts and cancellation."""

    def booking(self):
        return Booking(
            consultant_id="alice", service_id="intro", scheduled_date=MONDAY, scheduled_time=time(9, 45),
            status=BookingStatus.CONFIRMED, created_at=pendulum.datetime(2025, 6, 20, 10, 0, tz="UTC"),
        )

    def test_insert_returns_stored_row(self, store, session):
        session.route("POST", "bookings", FakeResponse(201, [{
            "id": "b9", "consultant_id": "alice", "service_id": "intro", "scheduled_date": "2025-06-23",
            "scheduled_time": "09:45:00", "status": "confirmed", "booking_reference": "INT-20250620-0042",
        }]))

        stored = run(store.insert_booking(self.booking()))

        call = session.calls[0]
        assert call["json"]["scheduled_time"] == "09:45:00"
        assert call["json"]["status"] == "confirmed"
        assert call["headers"] == {"Prefer": "return=representation"}
        assert stored.id == "b9"
        assert stored.booking_reference == "INT-20250620-0042"

    def test_insert_conflict_is_capacity_exceeded(self, store, session):
        session.route("POST", "bookings", FakeResponse(409, {"message": "conflicting key value"}))

        with pytest.raises(CapacityExceeded):
            run(store.insert_booking(self.booking()))

    def test_cancel(self, store, session):
        row = {"id": "b9", "consultant_id": "alice", "service_id": "intro", "scheduled_date": "2025-06-23",
               "scheduled_time": "09:45:00", "status": "confirmed"}
        session.route("GET", "bookings", FakeResponse(200, [row]))
        session.route("PATCH", "bookings", FakeResponse(200, [{**row, "status": "cancelled"}]))

        cancelled = run(store.cancel_booking("b9"))

        assert cancelled.status is BookingStatus.CANCELLED
        assert session.calls[1]["json"] == {"status": "cancelled"}

    def test_cancel_unknown(self, store, session):
        with pytest.raises(NotFoundError):
            run(store.cancel_booking("missing"))

    def test_cancel_completed(self, store, session):
        session.route("GET", "bookings", FakeResponse(200, [{
            "id": "b9", "consultant_id": "alice", "service_id": "intro", "scheduled_date": "2025-06-23",
            "scheduled_time": "09:45:00", "status": "completed",
        }]))

        with pytest.raises(ValidationError):
            run(store.cancel_booking("b9"))
