"""Request/response schemas - Pydantic models for validation"""

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .config import DEFAULT_CLIENT_ID
from .shared.validators import parse_time_of_day, validate_email, validate_time_of_day

ReservationStatus = Literal["pending", "confirmed", "cancelled"]
TemplateType = Literal["confirmation", "reminder", "followup"]
TimingUnit = Literal["minutes", "hours", "days"]


# ============================================
# Reservations
# ============================================


class CustomerInfo(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    company: Optional[str] = None
    message: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        if not v or not v.strip():
            raise ValueError("Email is required")
        return validate_email(v)


class CustomerInfoPatch(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    message: Optional[str] = None


class ReservationCreate(BaseModel):
    clientId: str = DEFAULT_CLIENT_ID
    datetime: dt.datetime
    customerInfo: CustomerInfo
    status: Optional[Literal["pending", "confirmed"]] = None


class ReservationUpdate(BaseModel):
    datetime: Optional[dt.datetime] = None
    customerInfo: Optional[CustomerInfoPatch] = None
    status: Optional[Literal["pending", "confirmed"]] = None


class ReservationResponse(BaseModel):
    id: str
    clientId: str
    datetime: dt.datetime
    status: str
    customerInfo: dict
    externalEventId: Optional[str] = None
    remindersSent: list[dict] = []
    createdAt: Optional[dt.datetime] = None

    @classmethod
    def from_model(cls, reservation) -> "ReservationResponse":
        return cls(
            id=reservation.id,
            clientId=reservation.client_id,
            datetime=reservation.datetime,
            status=reservation.status,
            customerInfo=reservation.customer_info or {},
            externalEventId=reservation.external_event_id,
            remindersSent=reservation.reminders_sent or [],
            createdAt=reservation.created_at,
        )


# ============================================
# Business hours
# ============================================


class DayHoursSchema(BaseModel):
    isOpen: bool = True
    start: str = "09:00"
    end: str = "17:00"
    slotCapacity: int = Field(default=1, ge=0)

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v):
        return validate_time_of_day(v)

    @model_validator(mode="after")
    def check_open_day(self):
        if self.isOpen:
            if parse_time_of_day(self.start) >= parse_time_of_day(self.end):
                raise ValueError("start must be before end on an open day")
            if self.slotCapacity < 1:
                raise ValueError("slotCapacity must be at least 1 on an open day")
        return self


class ReservationWindow(BaseModel):
    minDaysAhead: int = Field(default=1, ge=0)
    maxDaysAhead: int = Field(default=30, ge=0)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.minDaysAhead > self.maxDaysAhead:
            raise ValueError("minDaysAhead must not exceed maxDaysAhead")
        return self


class ExceptionalDay(BaseModel):
    date: dt.date
    isHoliday: bool = True
    note: Optional[str] = None


class BusinessHoursUpdate(BaseModel):
    # Seven entries, Monday first
    weeklyHours: Optional[list[DayHoursSchema]] = None
    slotIntervalMinutes: Optional[int] = Field(default=None, ge=5, le=240)
    reservationWindow: Optional[ReservationWindow] = None
    exceptionalDays: Optional[list[ExceptionalDay]] = None

    @field_validator("weeklyHours")
    @classmethod
    def check_seven_days(cls, v):
        if v is not None and len(v) != 7:
            raise ValueError("weeklyHours must contain exactly seven entries (Monday first)")
        return v


class BusinessHoursResponse(BaseModel):
    clientId: str
    weeklyHours: list[DayHoursSchema]
    slotIntervalMinutes: int
    reservationWindow: ReservationWindow
    exceptionalDays: list[ExceptionalDay] = []


# ============================================
# Availability
# ============================================


class SlotResponse(BaseModel):
    date: dt.date
    startTime: str
    endTime: str
    capacity: int
    bookedCount: int
    available: int
    isAvailable: bool
    blocked: bool = False


# ============================================
# Email templates
# ============================================


class TimingSchema(BaseModel):
    value: int = Field(default=0, ge=0)
    unit: TimingUnit = "hours"


class EmailTemplateCreate(BaseModel):
    clientId: str = DEFAULT_CLIENT_ID
    name: str
    type: TemplateType
    subject: str
    body: str
    timing: TimingSchema = TimingSchema()
    isActive: bool = True


class EmailTemplateUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[TemplateType] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    timing: Optional[TimingSchema] = None
    isActive: Optional[bool] = None


class EmailTemplateResponse(BaseModel):
    id: int
    clientId: str
    name: str
    type: str
    subject: str
    body: str
    timing: TimingSchema
    isActive: bool

    @classmethod
    def from_model(cls, template) -> "EmailTemplateResponse":
        return cls(
            id=template.id,
            clientId=template.client_id,
            name=template.name,
            type=template.type,
            subject=template.subject,
            body=template.body,
            timing=TimingSchema(value=template.timing_value, unit=template.timing_unit),
            isActive=template.is_active,
        )


class TestEmailRequest(BaseModel):
    templateId: int
    email: str

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)


class EmailLogResponse(BaseModel):
    id: int
    templateId: Optional[int]
    reservationId: Optional[str]
    recipient: Optional[str]
    status: str
    error: Optional[str]
    sentAt: Optional[dt.datetime]


# ============================================
# Calendar sync
# ============================================


class CalendarCallbackRequest(BaseModel):
    code: str
    clientId: str = DEFAULT_CLIENT_ID


class CalendarSyncStatusResponse(BaseModel):
    clientId: str
    syncStatus: str
    syncEnabled: bool = False
    calendarId: Optional[str] = None
    googleUserEmail: Optional[str] = None
    lastSyncTime: Optional[dt.datetime] = None
    lastError: Optional[str] = None
