# app/schemas/order.py
from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from app.core.tz import as_utc

CENT = Decimal("0.01")


def money_str(value) -> str:
    """Importe exacto con dos decimales: Decimal("11.5") -> "11.50"

    Los importes viajan como string para que el cliente pueda sumarlos sin
    errores de coma flotante.
    """
    return str(Decimal(value).quantize(CENT))


class CamelModel(BaseModel):
    """Acepta snake_case y los nombres camelCase de los clientes web"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckoutItem(CamelModel):
    name: str
    price: Decimal
    qty: int = 1


class CheckoutRequest(CamelModel):
    table_code: Optional[str] = None
    items: List[CheckoutItem] = []
    total: Optional[Decimal] = None
    order_mode: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_note: Optional[str] = None


class PaymentRequest(CamelModel):
    method: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: int
    name: str
    price: Decimal
    qty: int

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("price")
    def _money(self, v: Decimal) -> str:
        return money_str(v)


class OrderResponse(BaseModel):
    id: int
    table_code: Optional[str] = None
    total: Decimal
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    acknowledged: bool
    order_mode: str
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_note: Optional[str] = None
    fiscal_record_id: Optional[str] = None
    fiscal_status: Optional[str] = None
    created_at: datetime
    paid_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("total")
    def _money(self, v: Decimal) -> str:
        return money_str(v)

    @field_serializer("created_at", "paid_at", "completed_at", "canceled_at")
    def _utc(self, v: Optional[datetime]) -> Optional[str]:
        return as_utc(v).isoformat() if v else None
