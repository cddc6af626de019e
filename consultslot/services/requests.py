"""
Validated request models, one per engine operation.

Unknown or malformed fields are rejected before any store is touched.
"""

import datetime as dt
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..domain.exceptions import ValidationError

RequestT = TypeVar("RequestT", bound=BaseModel)


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("service_id", "consultant_id", check_fields=False)
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("identifier must not be blank")
        return normalized


def _normalize_pool(value: List[str]) -> List[str]:
    pool: List[str] = []
    for consultant_id in value:
        normalized = consultant_id.strip()
        if not normalized:
            raise ValueError("consultant ids must not be blank")
        if normalized not in pool:
            pool.append(normalized)
    if not pool:
        raise ValueError("consultant pool must not be empty")
    return pool


def _validate_start_time(value: dt.time) -> dt.time:
    if value.second or value.microsecond:
        raise ValueError("start time must be on a whole minute")
    if value.tzinfo is not None:
        raise ValueError("start time must be a local wall-clock time")
    return value


class AvailableDatesRequest(_Request):
    service_id: str
    consultant_ids: List[str]
    days_ahead: int = Field(default=30, gt=0, le=366)
    max_results: int = Field(default=15, gt=0)
    from_date: Optional[dt.date] = None

    @field_validator("consultant_ids")
    @classmethod
    def validate_pool(cls, value: List[str]) -> List[str]:
        return _normalize_pool(value)


class AvailableTimesRequest(_Request):
    service_id: str
    consultant_id: str
    date: dt.date


class BookingRequest(_Request):
    service_id: str
    consultant_id: str
    date: dt.date
    time: dt.time

    @field_validator("time")
    @classmethod
    def validate_time(cls, value: dt.time) -> dt.time:
        return _validate_start_time(value)


class PoolBookingRequest(_Request):
    service_id: str
    consultant_ids: List[str]
    date: dt.date
    time: dt.time

    @field_validator("consultant_ids")
    @classmethod
    def validate_pool(cls, value: List[str]) -> List[str]:
        return _normalize_pool(value)

    @field_validator("time")
    @classmethod
    def validate_time(cls, value: dt.time) -> dt.time:
        return _validate_start_time(value)


class CancelRequest(_Request):
    booking_id: str

    @field_validator("booking_id")
    @classmethod
    def validate_booking_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("booking id must not be blank")
        return normalized


def parse_request(model: Type[RequestT], data: Dict[str, Any]) -> RequestT:
    """Build a request model, turning pydantic errors into ValidationError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'request'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValidationError(f"Invalid {model.__name__}: {problems}") from exc
