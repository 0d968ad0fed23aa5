# app/services/payments_service.py
"""
Pagos online - COMANDA

Checkout alojado por un proveedor externo: se crea el checkout con el
importe de la orden y una URL de retorno; no hay webhook. El pago se da por
hecho cuando el navegador del cliente vuelve a /api/payments/success.
"""
import httpx
import logging
from decimal import Decimal
from typing import Any, Dict, Optional
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import ConflictError, InvalidTransitionError, ProviderError
from app.models.order import OrderStatus, PaymentStatus
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)


class PaymentsProvider:
    """Contrato: crear un checkout alojado y devolver la URL de redirección"""

    async def create_checkout(self, amount: Decimal, currency: str, reference: str, return_url: str) -> str:
        raise NotImplementedError


class HttpPaymentsProvider(PaymentsProvider):
    def __init__(self, api_url: str, api_key: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def create_checkout(self, amount: Decimal, currency: str, reference: str, return_url: str) -> str:
        payload = {
            "amount": float(amount),
            "currency": currency,
            "checkout_reference": reference,
            "return_url": return_url,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.api_url}/checkouts",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"}
                )
        except httpx.TimeoutException:
            logger.error(f"[Payments] Timeout creando checkout {reference}")
            raise ProviderError("payment_provider_timeout", status_code=504)
        except httpx.RequestError as e:
            logger.error(f"[Payments] Error de conexión: {e}")
            raise ProviderError("payment_provider_error")

        if response.status_code >= 400:
            logger.error(f"[Payments] ❌ Proveedor respondió {response.status_code}: {response.text[:300]}")
            raise ProviderError("payment_provider_error")

        try:
            data = response.json()
        except ValueError:
            logger.error("[Payments] Respuesta no-JSON del proveedor")
            raise ProviderError("payment_provider_error")

        if not isinstance(data, dict):
            raise ProviderError("payment_provider_error")

        url = data.get("redirect_url") or data.get("url")
        if not url:
            logger.error(f"[Payments] Respuesta sin URL de checkout: {data}")
            raise ProviderError("payment_provider_error")
        return url


def build_payments_provider(settings: Settings) -> Optional[PaymentsProvider]:
    if not settings.PAYMENTS_API_URL or not settings.PAYMENTS_API_KEY:
        return None
    return HttpPaymentsProvider(
        settings.PAYMENTS_API_URL,
        settings.PAYMENTS_API_KEY,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )


class PaymentService:
    def __init__(self, db: Session, settings: Settings, provider: Optional[PaymentsProvider]):
        self.settings = settings
        self.orders = OrderService(db, settings)
        self.provider = provider

    async def start_checkout(self, order_id: int) -> Dict[str, Any]:
        if self.provider is None:
            raise ProviderError("payments_not_configured", status_code=503)

        order = await run_in_threadpool(self.orders.get_order, order_id)
        if order.status == OrderStatus.CANCELED.value:
            raise InvalidTransitionError("order_canceled", order.status, "checkout")
        if order.payment_status == PaymentStatus.PAID.value:
            raise ConflictError("already_paid")

        base = self.settings.PUBLIC_BASE_URL.rstrip("/")
        return_url = f"{base}/api/payments/success?order_id={order.id}"
        checkout_url = await self.provider.create_checkout(
            order.total, self.settings.PAYMENTS_CURRENCY, f"order-{order.id}", return_url
        )

        await run_in_threadpool(self.orders.record_payment, order.id, PaymentStatus.PENDING.value, "online")
        logger.info(f"[Payments] Checkout creado para orden #{order.id} ({order.total} {self.settings.PAYMENTS_CURRENCY})")
        return {"order_id": order.id, "checkout_url": checkout_url}

    def confirm_success(self, order_id: int):
        """
        Retorno del checkout alojado. Solo confirma órdenes con un checkout
        online en curso (pago 'pending', método 'online').
        """
        if self.provider is None:
            raise ProviderError("payments_not_configured", status_code=503)

        order = self.orders.confirm_online_payment(order_id)
        logger.info(f"[Payments] ✅ Orden #{order.id} pagada online")
        return order
