"""
Booking store backed by Supabase's PostgREST API.

Expected tables: ``barbers``, ``services``, ``barber_services``,
``bookings``, ``barber_holidays``, ``barber_lunch_breaks`` and
``opening_hours``. The ``bookings`` table is expected to carry an
exclusion constraint over (barber_id, booking_date, time range) for
occupying statuses; PostgREST reports its violation as HTTP 409, which
surfaces as ``ConflictError``.

Rows the scheduling rules cannot use are handled the way the web app
handles them: lunch breaks without a usable start time and bookings
without a time are skipped with a warning. Any other row that does not
fit the record types raises ``PersistenceError``.
"""

import logging
from collections.abc import Callable
from datetime import date
from typing import Any, Optional, TypeVar

import httpx
import pydantic

from booking_engine.config import AppConfig, SupabaseConfig
from booking_engine.errors import ConflictError, PersistenceError
from booking_engine.schemas.booking_schema import (
    DEFAULT_BOOKING_DURATION,
    Barber,
    BookingRecord,
    ExistingBooking,
    HolidayPeriod,
    LunchBreak,
    OpeningHours,
    Service,
)
from booking_engine.utils import same_phone

logger = logging.getLogger(__name__)

T = TypeVar("T")

BOOKING_COLUMNS = (
    "id,barber_id,service_id,booking_date,booking_time,status,guest_booking,"
    "guest_name,guest_phone,guest_email,notes,confirmation_code,user_id,created_at"
)


def _jsonable(changes: dict[str, Any]) -> dict[str, Any]:
    out = {}
    for key, value in changes.items():
        if hasattr(value, "isoformat"):
            value = value.isoformat()
        elif hasattr(value, "value"):
            value = value.value
        out[key] = value
    return out


def _parse_rows(
    rows: Any, build: Callable[[dict[str, Any]], Optional[T]], table: str
) -> list[T]:
    """Build records from rows. ``build`` returns None for rows to skip."""
    if not isinstance(rows, list):
        raise PersistenceError(f"Unexpected response shape from {table}")
    try:
        built = [build(row) for row in rows]
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        # pydantic.ValidationError is a ValueError.
        raise PersistenceError(f"Malformed row in {table}: {exc}") from exc
    return [item for item in built if item is not None]


def _service_from_row(row: dict[str, Any]) -> Service:
    return Service(
        id=row["id"],
        name=row["name"],
        duration_minutes=row["duration"],
        active=row.get("active", True),
        price=row.get("price"),
    )


def _booking_from_row(row: dict[str, Any]) -> Optional[ExistingBooking]:
    if not row.get("booking_time"):
        logger.warning("Skipping booking %s without a booking_time", row.get("id"))
        return None
    return ExistingBooking(
        id=row["id"],
        barber_id=row["barber_id"],
        service_id=row.get("service_id"),
        duration_minutes=(row.get("services") or {}).get("duration")
        or DEFAULT_BOOKING_DURATION,
        booking_date=row["booking_date"],
        booking_time=row["booking_time"],
        status=row["status"],
    )


def _lunch_break_from_row(row: dict[str, Any]) -> Optional[LunchBreak]:
    try:
        return LunchBreak(
            barber_id=row["barber_id"],
            start_time=row.get("start_time"),
            duration_minutes=row.get("duration") or 60,
            is_active=row.get("is_active", True),
        )
    except pydantic.ValidationError:
        logger.warning(
            "Skipping lunch break of barber %s with start_time %r",
            row.get("barber_id"), row.get("start_time"),
        )
        return None


class SupabaseBookingRepository:
    """PostgREST client implementing the booking store contract."""

    def __init__(
        self,
        config: SupabaseConfig,
        timeout: float = 10.0,
        http: Optional[httpx.AsyncClient] = None,
        default_country_code: str = "+44",
    ) -> None:
        self.config = config
        self.default_country_code = default_country_code
        self.http = http or httpx.AsyncClient(
            base_url=f"{config.url.rstrip('/')}/rest/v1",
            headers={
                "apikey": config.service_key,
                "Authorization": f"Bearer {config.service_key}",
            },
            timeout=httpx.Timeout(timeout),
        )

    @classmethod
    def from_config(cls, config: AppConfig) -> "SupabaseBookingRepository":
        if not config.supabase.configured:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required")
        return cls(
            config.supabase,
            timeout=config.gateways.request_timeout_sec,
            default_country_code=config.twilio.default_country_code,
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        try:
            response = await self.http.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.HTTPError as exc:
            raise PersistenceError(f"Booking store unreachable: {exc}") from exc

        if response.status_code == 409:
            raise ConflictError("The selected time is no longer available")
        if not response.is_success:
            try:
                detail = response.json().get("message")
            except ValueError:
                detail = None
            raise PersistenceError(
                detail or f"{method} {path} failed with status {response.status_code}"
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise PersistenceError(f"{method} {path} returned invalid JSON") from exc

    async def list_barbers(self, active_only: bool = True) -> list[Barber]:
        params = {"select": "id,name,active", "order": "name.asc"}
        if active_only:
            params["active"] = "eq.true"
        rows = await self._request("GET", "/barbers", params=params)
        return _parse_rows(rows, Barber.model_validate, "barbers")

    async def list_services(self, active_only: bool = True) -> list[Service]:
        params = {"select": "id,name,duration,active,price", "order": "name.asc"}
        if active_only:
            params["active"] = "eq.true"
        rows = await self._request("GET", "/services", params=params)
        return _parse_rows(rows, _service_from_row, "services")

    async def list_barber_service_ids(self, barber_id: str) -> set[str]:
        rows = await self._request(
            "GET",
            "/barber_services",
            params={"select": "service_id", "barber_id": f"eq.{barber_id}"},
        )
        return set(_parse_rows(rows, lambda row: row["service_id"], "barber_services"))

    async def list_bookings(self, barber_id: str, day: date) -> list[ExistingBooking]:
        rows = await self._request(
            "GET",
            "/bookings",
            params={
                "select": "id,barber_id,service_id,booking_date,booking_time,status,services(duration)",
                "barber_id": f"eq.{barber_id}",
                "booking_date": f"eq.{day.isoformat()}",
            },
        )
        return _parse_rows(rows, _booking_from_row, "bookings")

    async def list_holidays(self, barber_id: str) -> list[HolidayPeriod]:
        rows = await self._request(
            "GET",
            "/barber_holidays",
            params={"select": "barber_id,start_date,end_date", "barber_id": f"eq.{barber_id}"},
        )
        return _parse_rows(rows, HolidayPeriod.model_validate, "barber_holidays")

    async def list_lunch_breaks(self, barber_id: str) -> list[LunchBreak]:
        rows = await self._request(
            "GET",
            "/barber_lunch_breaks",
            params={
                "select": "barber_id,start_time,duration,is_active",
                "barber_id": f"eq.{barber_id}",
            },
        )
        return _parse_rows(rows, _lunch_break_from_row, "barber_lunch_breaks")

    async def list_opening_hours(self, barber_id: str) -> list[OpeningHours]:
        rows = await self._request(
            "GET",
            "/opening_hours",
            params={
                "select": "barber_id,day_of_week,open_time,close_time,is_closed",
                "barber_id": f"eq.{barber_id}",
            },
        )
        return _parse_rows(rows, OpeningHours.model_validate, "opening_hours")

    async def get_booking(self, booking_id: str) -> Optional[BookingRecord]:
        rows = await self._request(
            "GET", "/bookings", params={"select": BOOKING_COLUMNS, "id": f"eq.{booking_id}"}
        )
        records = _parse_rows(rows, BookingRecord.model_validate, "bookings")
        return records[0] if records else None

    async def insert_booking(self, record: BookingRecord) -> BookingRecord:
        payload = record.model_dump(mode="json", exclude={"id", "created_at"}, exclude_none=True)
        rows = await self._request(
            "POST",
            "/bookings",
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        records = _parse_rows(rows or [], BookingRecord.model_validate, "bookings")
        if not records:
            raise PersistenceError("Booking store returned no row for the insert")
        logger.info("Booking stored: %s", records[0].id)
        return records[0]

    async def update_booking(self, booking_id: str, **changes: Any) -> BookingRecord:
        rows = await self._request(
            "PATCH",
            "/bookings",
            params={"id": f"eq.{booking_id}"},
            json=_jsonable(changes),
            headers={"Prefer": "return=representation"},
        )
        records = _parse_rows(rows or [], BookingRecord.model_validate, "bookings")
        if not records:
            raise PersistenceError(f"Booking {booking_id} not found")
        return records[0]

    async def find_guest_bookings(self, phone: str, code: str) -> list[BookingRecord]:
        rows = await self._request(
            "GET",
            "/bookings",
            params={
                "select": BOOKING_COLUMNS,
                "guest_booking": "eq.true",
                "confirmation_code": f"eq.{code}",
                "order": "booking_date.asc,booking_time.asc",
            },
        )
        # Codes are not unique; the phone narrows the match.
        return [
            record
            for record in _parse_rows(rows, BookingRecord.model_validate, "bookings")
            if same_phone(record.guest_phone or "", phone, self.default_country_code)
        ]
