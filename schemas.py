"""
Database Schemas for the Appointment Booking Service

Each Pydantic model represents a MongoDB collection.
Collection name is the lowercase of the class name.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from errors import InvalidConfiguration

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

AppointmentStatus = Literal["pendente", "confirmado", "concluido", "cancelado"]


class Profile(BaseModel):
    """
    Collection: "profile"
    The business behind a public booking page.
    """
    user_id: str = Field(..., description="Owning user reference")
    business_name: Optional[str] = Field(None, description="Display name, source of the public slug")
    slug: Optional[str] = Field(None, description="Persisted public slug, unique")
    owner_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = Field(None, description="Business WhatsApp number")
    instagram: Optional[str] = Field(None, description="Instagram handle without @")
    address: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None


class Settings(BaseModel):
    """
    Collection: "settings"
    One per business. Missing documents and missing fields fall back to
    the defaults declared here.
    """
    user_id: Optional[str] = None
    working_hours_start: str = Field("09:00", pattern=TIME_PATTERN, description="Workday start HH:MM 24h")
    working_hours_end: str = Field("18:00", pattern=TIME_PATTERN, description="Workday end HH:MM 24h")
    appointment_interval: int = Field(30, gt=0, le=24 * 60, description="Slot grid step in minutes")
    working_days: List[str] = Field(
        default_factory=lambda: ["monday", "tuesday", "wednesday", "thursday", "friday"],
        description="Working days (monday..sunday)",
    )
    auto_confirm: bool = Field(True, description="Public bookings are created already confirmed")
    send_reminders: bool = False
    reminder_hours: int = Field(24, ge=0)

    @field_validator("working_days", mode="before")
    @classmethod
    def normalize_days(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set)):
            return [str(day).strip().lower() for day in value]
        return value

    @field_validator("working_days")
    @classmethod
    def known_days(cls, value: List[str]) -> List[str]:
        unknown = [day for day in value if day not in WEEKDAYS]
        if unknown:
            raise ValueError(f"Unknown weekday identifiers: {', '.join(unknown)}")
        # keep the week order and drop duplicates
        return [day for day in WEEKDAYS if day in value]

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "Settings":
        """Build settings from a stored document, applying defaults for anything absent."""
        if not doc:
            return cls()
        fields = {k: v for k, v in doc.items() if k in cls.model_fields and v is not None}
        try:
            return cls(**fields)
        except ValidationError as e:
            raise InvalidConfiguration(f"Configuração de horários inválida: {e.error_count()} campo(s)") from e


class SettingsUpdate(Settings):
    """Settings as written from the dashboard; the day must not be empty."""

    @model_validator(mode="after")
    def start_before_end(self) -> "SettingsUpdate":
        if self.working_hours_start >= self.working_hours_end:
            raise ValueError("working_hours_start must be earlier than working_hours_end")
        return self


class Service(BaseModel):
    """
    Collection: "service"
    """
    user_id: str = Field(..., description="Owning business user id")
    name: str = Field(..., description="Service name (e.g., Corte Feminino)")
    duration: int = Field(30, ge=1, le=24 * 60, description="Duration in minutes, informational")
    price: float = Field(0, ge=0, description="Price amount")
    status: Literal["active", "inactive"] = Field("active")
    description: Optional[str] = Field(None, description="Optional description")


class Appointment(BaseModel):
    """
    Collection: "appointment"
    """
    user_id: str = Field(..., description="Owning business user id")
    client_id: Optional[str] = None
    client_name: str
    client_whatsapp: Optional[str] = Field(None, description="Digits only")
    service_id: Optional[str] = Field(None, description="Service document id as string")
    date: str = Field(..., pattern=DATE_PATTERN, description="YYYY-MM-DD")
    time: str = Field(..., pattern=TIME_PATTERN, description="HH:MM 24h start time")
    status: AppointmentStatus = Field("pendente")
    confirmed_at: Optional[datetime] = None
    notes: Optional[str] = None
