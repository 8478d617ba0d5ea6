import enum
from datetime import UTC, datetime

from pydantic import field_validator
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(UTC)


class AlarmState(enum.StrEnum):
    """Per-activation state held by the scheduler."""

    PENDING = "pending"
    DUE = "due"
    DELIVERING = "delivering"
    FIRED = "fired"
    DELIVERY_FAILED = "delivery_failed"
    RECORD_FAILED = "record_failed"
    CANCELLED = "cancelled"


class AlarmStatus(enum.StrEnum):
    """User-visible status of a listed alarm."""

    PENDING = "pending"
    FIRED = "fired"
    CANCELLED = "cancelled"
    DELIVERY_FAILED = "delivery_failed"
    RECORD_FAILED = "record_failed"


class AlarmBase(SQLModel):
    title: str = Field(min_length=1)
    scheduled_time: datetime = Field(sa_type=DateTime(timezone=True))
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    fired_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))


class AlarmRecord(AlarmBase, table=True):  # type: ignore
    __tablename__ = "alarm"  # type: ignore

    id: int | None = Field(default=None, primary_key=True)


class Alarm(AlarmBase):
    id: int

    @field_validator("scheduled_time", "created_at", "fired_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        # SQLite hands back naive datetimes; everything is stored as UTC.
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class AlarmView(Alarm):
    status: AlarmStatus
