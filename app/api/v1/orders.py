"""
Endpoints de órdenes para cocina / caja
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.dependencies import get_app_settings, get_fiscal_provider, require_staff
from app.core.config import Settings
from app.core.database import get_db
from app.models.order import Order, PaymentStatus
from app.schemas.order import CamelModel, OrderResponse, PaymentRequest, money_str
from app.services.fiscal_service import FiscalProvider, FiscalService
from app.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"], dependencies=[Depends(require_staff)])


class CloseTableRequest(CamelModel):
    table_code: str
    method: str = "cash"
    day: Optional[date] = None


def serialize_order(order: Order) -> dict:
    return OrderResponse.model_validate(order).model_dump(mode="json")


def _order_result(order: Order) -> dict:
    return {"ok": True, "order": serialize_order(order)}


@router.get("")
def list_orders(
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    day: Optional[date] = None,
    table: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """
    Listar órdenes con sus líneas

    Filtros: status, payment_status, day (YYYY-MM-DD, hora local), table.
    Página máxima: ORDERS_MAX_PAGE_SIZE.
    """
    service = OrderService(db, settings)
    orders, has_more = service.list_orders(
        status=status,
        payment_status=payment_status,
        day=day,
        table_code=table,
        limit=limit,
        offset=offset,
    )
    page_size = len(orders)
    return {
        "ok": True,
        "orders": [serialize_order(o) for o in orders],
        "offset": offset,
        "count": page_size,
        "has_more": has_more,
        "next_offset": offset + page_size if has_more else None,
    }


@router.post("/close-table")
def close_table(
    data: CloseTableRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Cobrar y completar todas las órdenes pendientes de una mesa"""
    orders = OrderService(db, settings).close_table_bill(data.table_code, data.method, data.day)
    return {
        "ok": True,
        "orders": [serialize_order(o) for o in orders],
        "total": money_str(sum(o.total for o in orders)),
    }


@router.get("/{order_id}")
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    return _order_result(OrderService(db, settings).get_order(order_id))


# ============================================
# CICLO DE VIDA
# ============================================

@router.post("/{order_id}/complete")
def complete_order(order_id: int, db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    return _order_result(OrderService(db, settings).transition(order_id, "complete"))


@router.post("/{order_id}/cancel")
def cancel_order(order_id: int, db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    return _order_result(OrderService(db, settings).transition(order_id, "cancel"))


@router.post("/{order_id}/restore")
def restore_order(order_id: int, db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    return _order_result(OrderService(db, settings).transition(order_id, "restore"))


@router.post("/{order_id}/ack")
def ack_order(order_id: int, db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    return _order_result(OrderService(db, settings).transition(order_id, "ack"))


# ============================================
# PAGOS
# ============================================

@router.post("/{order_id}/pay")
def pay_order(
    order_id: int,
    data: Optional[PaymentRequest] = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    method = data.method if data else None
    return _order_result(OrderService(db, settings).record_payment(order_id, PaymentStatus.PAID.value, method))


@router.post("/{order_id}/unpay")
def unpay_order(order_id: int, db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    return _order_result(OrderService(db, settings).record_payment(order_id, PaymentStatus.UNPAID.value))


# ============================================
# RECIBO FISCAL
# ============================================

@router.post("/{order_id}/receipt")
async def issue_receipt(
    order_id: int,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    provider: Optional[FiscalProvider] = Depends(get_fiscal_provider),
):
    result = await FiscalService(db, settings, provider).issue_receipt(order_id)
    return {"ok": True, "order_id": order_id, "receipt": result}
