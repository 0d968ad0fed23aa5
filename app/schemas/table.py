# app/schemas/table.py
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from typing import Optional
from datetime import datetime

from app.core.tz import as_utc
from app.schemas.order import CamelModel


class TableCreate(CamelModel):
    name: str
    seats: int = Field(4, ge=1)

    @field_validator("name")
    @classmethod
    def name_required(cls, v):
        if not v or not v.strip():
            raise ValueError("El nombre de la mesa es obligatorio")
        return v.strip().upper()


class TableResponse(BaseModel):
    id: int
    name: str
    seats: int
    status: str
    reservation_id: Optional[int] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("updated_at")
    def _utc(self, v: datetime) -> str:
        return as_utc(v).isoformat()


class ReservationCreate(CamelModel):
    table_id: int
    customer_name: str
    customer_phone: Optional[str] = None
    party_size: int = Field(2, ge=1)
    requested_for: Optional[datetime] = None
    note: Optional[str] = None

    @field_validator("customer_name")
    @classmethod
    def name_required(cls, v):
        if not v or not v.strip():
            raise ValueError("Nombre del cliente es obligatorio")
        return v.strip()


class ReservationResponse(BaseModel):
    id: int
    table_id: int
    customer_name: str
    customer_phone: Optional[str] = None
    party_size: int
    requested_for: Optional[datetime] = None
    note: Optional[str] = None
    status: str
    created_at: datetime
    seated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("requested_for", "created_at", "seated_at", "completed_at", "cancelled_at")
    def _utc(self, v: Optional[datetime]) -> Optional[str]:
        return as_utc(v).isoformat() if v else None
