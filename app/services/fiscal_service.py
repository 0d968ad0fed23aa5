# app/services/fiscal_service.py
"""
Servicio de Recibo Fiscal - COMANDA
Emisión del scontrino vía proveedor fiscal externo (HTTP)

Sin proveedor configurado la emisión falla con 'fiscal_not_configured';
no existe modo simulado.
"""
import httpx
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import ProviderError
from app.models.order import Order
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)

# IVA típico de restauración
DEFAULT_VAT_RATE = 10


class FiscalProvider:
    """Contrato: dado un pedido con líneas, devuelve {record_id, status, number}"""

    async def create_receipt(self, order: Order) -> Dict[str, Any]:
        raise NotImplementedError


class HttpFiscalProvider(FiscalProvider):
    def __init__(self, api_url: str, api_key: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _payload(self, order: Order) -> Dict[str, Any]:
        return {
            "external_reference": f"order_{order.id}",
            "receipt": {
                "issue_date": datetime.now(timezone.utc).isoformat(),
                "items": [{
                    "description": item.name,
                    "quantity": item.qty,
                    "unit_price": float(item.price),
                    "vat_rate": DEFAULT_VAT_RATE
                } for item in order.items],
                "payments": [{
                    "method": order.payment_method or "cash",
                    "amount": float(order.total)
                }],
                "extra": {"table": order.table_code}
            }
        }

    async def create_receipt(self, order: Order) -> Dict[str, Any]:
        api_url = f"{self.api_url}/transactions"
        logger.info(f"[Fiscal] Enviando orden #{order.id} a {api_url}: {len(order.items)} líneas")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    api_url,
                    json=self._payload(order),
                    headers={
                        "Content-Type": "application/json",
                        "Authorization": f"Bearer {self.api_key}"
                    }
                )
        except httpx.TimeoutException:
            logger.error("[Fiscal] Timeout conectando al proveedor fiscal")
            raise ProviderError("fiscal_provider_timeout", status_code=504)
        except httpx.RequestError as e:
            logger.error(f"[Fiscal] Error de conexión: {str(e)}")
            raise ProviderError("fiscal_provider_error")

        logger.info(f"[Fiscal] Respuesta: status={response.status_code}")

        try:
            data = response.json()
        except ValueError:
            body_preview = response.text[:500] if response.text else "(vacío)"
            logger.error(f"[Fiscal] Respuesta no-JSON: {body_preview}")
            raise ProviderError("fiscal_provider_error")

        if not isinstance(data, dict):
            raise ProviderError("fiscal_provider_error")

        if response.status_code not in (200, 201):
            error_msg = data.get("message") or data.get("error") or f"HTTP {response.status_code}"
            logger.error(f"[Fiscal] ❌ Rechazado: {error_msg}")
            raise ProviderError("fiscal_provider_error", error_msg)

        return {
            "record_id": data.get("id") or data.get("record_id"),
            "number": data.get("receipt_number") or data.get("number"),
            "status": data.get("status") or "registered",
        }


def build_fiscal_provider(settings: Settings) -> Optional[FiscalProvider]:
    if not settings.FISCAL_API_URL or not settings.FISCAL_API_KEY:
        return None
    return HttpFiscalProvider(
        settings.FISCAL_API_URL,
        settings.FISCAL_API_KEY,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )


class FiscalService:
    """Emitir recibo fiscal para una orden y guardar la referencia"""

    def __init__(self, db: Session, settings: Settings, provider: Optional[FiscalProvider]):
        self.orders = OrderService(db, settings)
        self.provider = provider

    async def issue_receipt(self, order_id: int) -> Dict[str, Any]:
        if self.provider is None:
            raise ProviderError("fiscal_not_configured", status_code=503)

        order, issued = await run_in_threadpool(self.orders.claim_receipt, order_id)
        if issued:
            return {"record_id": order.fiscal_record_id, "status": order.fiscal_status, "number": None}

        try:
            result = await self.provider.create_receipt(order)
        except Exception:
            # Sin recibo: la orden vuelve a quedar disponible para reintentar
            await run_in_threadpool(self.orders.release_receipt_claim, order.id)
            raise

        await run_in_threadpool(
            self.orders.attach_receipt, order.id, result.get("record_id"), result.get("status")
        )

        logger.info(f"[Fiscal] ✅ Recibo emitido para orden #{order.id}: {result.get('record_id')}")
        return result
