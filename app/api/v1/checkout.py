"""
Checkout del cliente (menú público)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.dependencies import get_app_settings
from app.core.config import Settings
from app.core.database import get_db
from app.schemas.order import CheckoutRequest, money_str
from app.services.order_service import OrderService

router = APIRouter(tags=["checkout"])


@router.post("/checkout")
def checkout(
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """
    Crear orden desde el carrito

    - items: [{name, price, qty}] (al menos uno)
    - total: opcional, debe coincidir con la suma de las líneas
    - orderMode: table | takeaway | home
    """
    order = OrderService(db, settings).create_order(
        table_code=payload.table_code,
        items=[item.model_dump() for item in payload.items],
        total=payload.total,
        mode=payload.order_mode,
        customer_name=payload.customer_name,
        customer_phone=payload.customer_phone,
        customer_note=payload.customer_note,
    )
    return {"ok": True, "order_id": order.id, "total": money_str(order.total)}
