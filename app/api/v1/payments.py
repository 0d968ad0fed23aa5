"""
Pagos online con checkout alojado
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.dependencies import get_app_settings, get_payments_provider
from app.api.v1.orders import serialize_order
from app.core.config import Settings
from app.core.database import get_db
from app.schemas.order import CamelModel
from app.services.payments_service import PaymentService, PaymentsProvider

router = APIRouter(prefix="/payments", tags=["payments"])


class CheckoutSessionRequest(CamelModel):
    order_id: int


def get_payment_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    provider: Optional[PaymentsProvider] = Depends(get_payments_provider),
) -> PaymentService:
    return PaymentService(db, settings, provider)


@router.post("/checkout")
async def create_checkout(
    data: CheckoutSessionRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """
    Crear checkout en el proveedor y devolver la URL a la que redirigir.
    La orden queda con pago 'pending' hasta volver a /payments/success.
    """
    result = await service.start_checkout(data.order_id)
    return {"ok": True, **result}


@router.get("/success")
def payment_success(order_id: int, service: PaymentService = Depends(get_payment_service)):
    order = service.confirm_success(order_id)
    return {"ok": True, "order": serialize_order(order)}
