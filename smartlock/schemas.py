"""Pydantic schemas for the directory wire format, the local cache and the control API."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import IntEnum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Format used by the directory server for Expire / DateTime fields
SERVER_TIME_FORMAT = "%d/%m/%Y %H:%M:%S"
FALLBACK_TIME_FORMATS = (SERVER_TIME_FORMAT, "%d/%m/%Y %H:%M", "%d/%m/%Y")

USERS_HEADER = "AllowedUsers"
LOG_HEADER = "Log"


class PayloadError(ValueError):
    """Raised when a directory payload cannot be decoded."""


def parse_timestamp(value: str) -> datetime:
    """Parse a server timestamp.

    Accepts ISO-8601 and ``dd/mm/YYYY HH:MM:SS``. The value may arrive
    JSON-quoted with escaped slashes (``"31\\/03\\/2017 12:46:59"``).
    """
    text = value.strip().strip('"').replace("\\/", "/").strip()
    if not text:
        raise PayloadError("Empty timestamp")
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in FALLBACK_TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise PayloadError(f"Unrecognized timestamp: {value!r}")


def format_timestamp(value: datetime) -> str:
    return value.strftime(SERVER_TIME_FORMAT)


# ============================================================
# Enums
# ============================================================
class LogType(IntEnum):
    ACCESS_ATTEMPT = 1
    INFO = 2
    ERROR = 3


# ============================================================
# Directory records (wire + cache)
# ============================================================
class Credential(BaseModel):
    """One authorized person. ``card_id`` is absent until a card is enrolled."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    card_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("CardID", "cardId", "card_id"),
        serialization_alias="CardID",
    )
    pin: str = Field(
        validation_alias=AliasChoices("Pin", "pin"),
        serialization_alias="Pin",
    )
    expire: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("Expire", "expire"),
        serialization_alias="Expire",
    )

    @field_validator("expire", mode="before")
    @classmethod
    def _parse_expire(cls, value):
        if value is None or value == "":
            return None
        if isinstance(value, str):
            return parse_timestamp(value)
        return value

    @property
    def has_card(self) -> bool:
        return bool(self.card_id)

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class LogEntry(BaseModel):
    """One audit event. Immutable; ``id`` stays local and is never sent to the server."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: LogType = Field(
        validation_alias=AliasChoices("Type", "type"),
        serialization_alias="Type",
    )
    pin: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("Pin", "pin"),
        serialization_alias="Pin",
    )
    card_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("CardID", "cardId", "card_id"),
        serialization_alias="CardID",
    )
    text: str = Field(
        default="",
        validation_alias=AliasChoices("Text", "text"),
        serialization_alias="Text",
    )
    timestamp: str = Field(
        validation_alias=AliasChoices("DateTime", "dateTime", "timestamp"),
        serialization_alias="DateTime",
    )

    @classmethod
    def create(
        cls,
        log_type: LogType,
        text: str,
        when: datetime,
        pin: Optional[str] = None,
        card_id: Optional[str] = None,
    ) -> "LogEntry":
        return cls(type=log_type, text=text, pin=pin, card_id=card_id,
                   timestamp=format_timestamp(when))

    @property
    def is_error(self) -> bool:
        return self.type == LogType.ERROR

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})


class UserListPayload(BaseModel):
    """``GET data`` response: ``{"AllowedUsers": [...]}``."""

    allowed_users: list[Credential] = Field(
        validation_alias=AliasChoices(USERS_HEADER),
        serialization_alias=USERS_HEADER,
    )


class LogPayload(BaseModel):
    """``POST data`` request body: ``{"Log": [...]}``."""

    log: list[LogEntry] = Field(serialization_alias=LOG_HEADER)

    def to_wire(self) -> dict:
        return {LOG_HEADER: [entry.to_wire() for entry in self.log]}


# ============================================================
# Control API
# ============================================================
class CardAccessRequest(BaseModel):
    card_id: str = Field(..., min_length=1, examples=["04A2B3C4"])


class PinAccessRequest(BaseModel):
    pin: str = Field(..., min_length=1, examples=["12345"])


class BindCardRequest(BaseModel):
    pin: str = Field(..., min_length=1)
    card_id: str = Field(..., min_length=1)


class LogCreate(BaseModel):
    type: LogType = LogType.INFO
    text: str
    pin: Optional[str] = None
    card_id: Optional[str] = None
    urgent: Optional[bool] = None   # None: derived from type (errors are urgent)


class NetworkUpRequest(BaseModel):
    address: Optional[str] = None


class AccessResponse(BaseModel):
    authorized: bool
    verdict: str                      # "allow" | "deny"
    reason: str
    card_enrollment_required: bool = False
    data_source: str
    lock_id: str


class StatusResponse(BaseModel):
    lock_id: str
    data_source: str
    initialized: bool
    network_up: bool
    address: Optional[str]
    credentials: int
    pending_logs: int
    scheduler_running: bool
    cycles_run: int
    last_sync_success: Optional[bool]
    last_sync_at: Optional[datetime]
    time_checked: bool
    timestamp: datetime


class DataSourceEvent(BaseModel):
    data_source: str
    revision: int
    changed: bool
