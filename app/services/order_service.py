# app/services/order_service.py
"""
Servicio de órdenes - COMANDA

Checkout, máquina de estados del ciclo de vida y sub-estado de pago.

Ciclo de vida:
    pending -> completed | canceled
    completed | canceled -> pending   (solo vía 'restore')
Pago (ortogonal):
    unpaid -> pending -> paid, unpaid -> paid, {pending, paid} -> unpaid
"""
import logging
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from app.core.config import Settings
from app.core.database import run_in_transaction
from app.core.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from app.core.tz import day_bounds_utc, utcnow
from app.models.order import Order, OrderItem, OrderMode, OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
TOTAL_TOLERANCE = Decimal("0.005")

PAYMENT_METHODS = {"cash", "card", "online", "other"}

# fiscal_status mientras el proveedor fiscal procesa la orden
RECEIPT_ISSUING = "issuing"

# acción -> {estado actual: estado destino}
LIFECYCLE_TRANSITIONS = {
    "complete": {OrderStatus.PENDING: OrderStatus.COMPLETED},
    "cancel": {OrderStatus.PENDING: OrderStatus.CANCELED},
    "restore": {
        OrderStatus.COMPLETED: OrderStatus.PENDING,
        OrderStatus.CANCELED: OrderStatus.PENDING,
    },
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.UNPAID: {PaymentStatus.PENDING, PaymentStatus.PAID},
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.UNPAID},
    PaymentStatus.PAID: {PaymentStatus.UNPAID},
}


def money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_table_code(value: Optional[str]) -> Optional[str]:
    """'9' -> 'T9', ' t3 ' -> 'T3', '' -> None"""
    code = (value or "").strip().upper()
    if not code:
        return None
    if code.isdigit():
        return f"T{code}"
    return code


class OrderService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    # ============================================
    # CHECKOUT
    # ============================================

    def create_order(
        self,
        table_code: Optional[str],
        items: List[Dict[str, Any]],
        total: Optional[Any] = None,
        mode: Optional[str] = None,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        customer_note: Optional[str] = None,
    ) -> Order:
        """
        Crear orden con sus líneas en una sola transacción.

        El total se calcula en el servidor; si el cliente envía uno, debe
        coincidir con la suma de price * qty.
        """
        if not items:
            raise ValidationError("missing_items")

        table_code = normalize_table_code(table_code)
        customer_name = (customer_name or "").strip() or None
        customer_phone = (customer_phone or "").strip() or None
        order_mode = self._resolve_mode(mode, table_code, customer_name, customer_phone)

        lines = [self._parse_item(item) for item in items]
        computed = sum((price * qty for _, price, qty in lines), Decimal("0")).quantize(CENT)

        if total is not None:
            try:
                declared = money(total)
            except InvalidOperation:
                raise ValidationError("invalid_total")
            if abs(declared - computed) > TOTAL_TOLERANCE:
                logger.warning(f"[Orders] Total no coincide: cliente={declared} servidor={computed}")
                raise ValidationError("total_mismatch")

        def insert():
            order = Order(
                table_code=table_code,
                total=computed,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.UNPAID.value,
                acknowledged=False,
                order_mode=order_mode.value,
                customer_name=customer_name,
                customer_phone=customer_phone,
                customer_note=(customer_note or "").strip() or None,
            )
            order.items = [OrderItem(name=name, price=price, qty=qty) for name, price, qty in lines]
            self.db.add(order)
            return order

        order = run_in_transaction(self.db, insert, attempts=1, label="order.create")
        logger.info(
            f"[Orders] ✅ Orden #{order.id} creada: {len(lines)} líneas, total {order.total}, "
            f"modo {order.order_mode}, mesa {order.table_code or '-'}"
        )
        return order

    def _resolve_mode(self, mode, table_code, customer_name, customer_phone) -> OrderMode:
        if mode:
            try:
                order_mode = OrderMode(mode.strip().lower())
            except ValueError:
                raise ValidationError("invalid_mode")
        else:
            order_mode = OrderMode.TABLE if table_code else OrderMode.TAKEAWAY

        if order_mode is OrderMode.TABLE and not table_code:
            raise ValidationError("missing_table")
        if order_mode is OrderMode.HOME and not (customer_name and customer_phone):
            raise ValidationError("missing_customer")
        return order_mode

    @staticmethod
    def _parse_item(item: Dict[str, Any]) -> Tuple[str, Decimal, int]:
        name = str(item.get("name") or "").strip()
        try:
            price = money(item.get("price"))
            qty = int(item.get("qty", 1))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("invalid_item")
        if not name or price < 0 or qty < 1:
            raise ValidationError("invalid_item")
        return name, price, qty

    # ============================================
    # CONSULTAS
    # ============================================

    def get_order(self, order_id: int) -> Order:
        order = self.db.query(Order).options(selectinload(Order.items)).filter(
            Order.id == order_id
        ).first()
        if not order:
            raise NotFoundError("order_not_found")
        return order

    def list_orders(
        self,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        day: Optional[date] = None,
        table_code: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[Order], bool]:
        """
        Listar órdenes con sus líneas, más recientes primero.

        Returns:
            (órdenes de la página, hay_más)
        """
        page_size = self._page_size(limit)
        if offset < 0:
            raise ValidationError("invalid_offset")

        query = self.db.query(Order).options(selectinload(Order.items))

        if status:
            if status not in {s.value for s in OrderStatus}:
                raise ValidationError("invalid_status")
            query = query.filter(Order.status == status)

        if payment_status:
            if payment_status not in {s.value for s in PaymentStatus}:
                raise ValidationError("invalid_payment_status")
            query = query.filter(Order.payment_status == payment_status)

        if day:
            start, end = day_bounds_utc(day, self.settings.RESTAURANT_TIMEZONE)
            query = query.filter(Order.created_at >= start, Order.created_at < end)

        code = normalize_table_code(table_code)
        if code:
            query = query.filter(Order.table_code == code)

        rows = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(page_size + 1).all()
        return rows[:page_size], len(rows) > page_size

    def _page_size(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.settings.ORDERS_PAGE_SIZE
        if limit < 1:
            raise ValidationError("invalid_limit")
        return min(limit, self.settings.ORDERS_MAX_PAGE_SIZE)

    # ============================================
    # CICLO DE VIDA
    # ============================================

    def transition(self, order_id: int, action: str) -> Order:
        """Aplicar complete | cancel | restore | ack"""
        if action == "ack":
            return self.acknowledge(order_id)

        targets = LIFECYCLE_TRANSITIONS.get(action)
        if targets is None:
            raise ValidationError("unknown_action")

        def apply():
            order = self.get_order(order_id)
            current = OrderStatus(order.status)
            target = targets.get(current)
            if target is None:
                raise InvalidTransitionError("invalid_transition", current.value, action)

            order.status = target.value
            if target is OrderStatus.COMPLETED:
                order.completed_at = utcnow()
            elif target is OrderStatus.CANCELED:
                order.canceled_at = utcnow()
            else:
                order.completed_at = None
                order.canceled_at = None
            return order

        try:
            order = run_in_transaction(
                self.db, apply, attempts=self.settings.OPTIMISTIC_RETRIES, label=f"order.{action}"
            )
        except InvalidTransitionError as e:
            logger.warning(f"[Orders] ❌ Orden #{order_id}: {e.message}")
            raise

        logger.info(f"[Orders] Orden #{order.id} -> {order.status} ({action})")
        return order

    def acknowledge(self, order_id: int) -> Order:
        """Marcar como vista por el personal. Idempotente: si ya lo está, no escribe."""
        def apply():
            order = self.get_order(order_id)
            if not order.acknowledged:
                order.acknowledged = True
            return order

        return run_in_transaction(self.db, apply, attempts=self.settings.OPTIMISTIC_RETRIES, label="order.ack")

    # ============================================
    # PAGOS
    # ============================================

    def record_payment(self, order_id: int, status: str, method: Optional[str] = None) -> Order:
        """
        Cambiar el estado de pago (independiente del ciclo de vida).

        Una orden cancelada no puede pasar a 'pending' ni 'paid'.
        """
        try:
            target = PaymentStatus(status)
        except ValueError:
            raise ValidationError("invalid_payment_status")

        method = (method or "").strip().lower() or None
        if method and method not in PAYMENT_METHODS:
            raise ValidationError("invalid_payment_method")

        def apply():
            order = self.get_order(order_id)
            current = PaymentStatus(order.payment_status)
            if target is current:
                return order

            if order.status == OrderStatus.CANCELED.value and target is not PaymentStatus.UNPAID:
                raise InvalidTransitionError("order_canceled", order.status, target.value)
            if target not in PAYMENT_TRANSITIONS[current]:
                raise InvalidTransitionError("invalid_payment_transition", current.value, target.value)

            order.payment_status = target.value
            if target is PaymentStatus.PAID:
                order.paid_at = utcnow()
                if method:
                    order.payment_method = method
            elif target is PaymentStatus.PENDING:
                if method:
                    order.payment_method = method
            else:
                order.paid_at = None
                order.payment_method = None
            return order

        order = run_in_transaction(
            self.db, apply, attempts=self.settings.OPTIMISTIC_RETRIES, label=f"order.payment.{target.value}"
        )
        logger.info(f"[Orders] Orden #{order.id} pago -> {order.payment_status} ({order.payment_method or '-'})")
        return order

    def confirm_online_payment(self, order_id: int) -> Order:
        """
        Cerrar un checkout online: pending/online -> paid.

        Repetir la confirmación de un pago online ya cobrado no escribe nada.
        """
        def apply():
            order = self.get_order(order_id)
            current = PaymentStatus(order.payment_status)
            if current is PaymentStatus.PAID and order.payment_method == "online":
                return order
            if current is not PaymentStatus.PENDING or order.payment_method != "online":
                raise InvalidTransitionError("payment_not_pending", current.value, "confirm")
            if order.status == OrderStatus.CANCELED.value:
                raise InvalidTransitionError("order_canceled", order.status, "confirm")

            order.payment_status = PaymentStatus.PAID.value
            order.paid_at = utcnow()
            return order

        try:
            return run_in_transaction(
                self.db, apply, attempts=self.settings.OPTIMISTIC_RETRIES, label="order.payment.confirm"
            )
        except InvalidTransitionError as e:
            logger.warning(f"[Orders] ❌ Orden #{order_id} confirmación online rechazada: {e.message}")
            raise

    def close_table_bill(self, table_code: str, method: str, day: Optional[date] = None) -> List[Order]:
        """
        Cobrar y completar todas las órdenes pendientes de una mesa (del día)
        en una sola transacción.
        """
        code = normalize_table_code(table_code)
        if not code:
            raise ValidationError("missing_table")
        method = (method or "").strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValidationError("invalid_payment_method")

        def apply():
            query = self.db.query(Order).options(selectinload(Order.items)).filter(
                Order.table_code == code,
                Order.status == OrderStatus.PENDING.value,
            )
            if day:
                start, end = day_bounds_utc(day, self.settings.RESTAURANT_TIMEZONE)
                query = query.filter(Order.created_at >= start, Order.created_at < end)
            orders = query.order_by(Order.created_at, Order.id).all()
            if not orders:
                raise NotFoundError("no_pending_orders")

            now = utcnow()
            for order in orders:
                if order.payment_status != PaymentStatus.PAID.value:
                    order.payment_status = PaymentStatus.PAID.value
                    order.payment_method = method
                    order.paid_at = now
                order.status = OrderStatus.COMPLETED.value
                order.completed_at = now
            return orders

        orders = run_in_transaction(
            self.db, apply, attempts=self.settings.OPTIMISTIC_RETRIES, label="order.close_table"
        )
        total = sum((o.total for o in orders), Decimal("0"))
        logger.info(f"[Orders] ✅ Mesa {code} cerrada: {len(orders)} órdenes, total {total} ({method})")
        return orders

    # ============================================
    # RECIBO FISCAL
    # ============================================

    def claim_receipt(self, order_id: int) -> Tuple[Order, bool]:
        """
        Marcar la orden como 'issuing' antes de llamar al proveedor fiscal.
        Dos emisiones concurrentes chocan en version_id: solo una llega al
        proveedor, la otra recibe 'receipt_in_progress'.

        Returns:
            (orden, ya_tenía_recibo)
        """
        def apply():
            order = self.get_order(order_id)
            if order.fiscal_record_id:
                return order, True
            if order.fiscal_status == RECEIPT_ISSUING:
                raise ConflictError("receipt_in_progress")
            if not order.items:
                raise ValidationError("missing_items")
            order.fiscal_status = RECEIPT_ISSUING
            return order, False

        return run_in_transaction(
            self.db, apply, attempts=self.settings.OPTIMISTIC_RETRIES, label="order.receipt.claim"
        )

    def release_receipt_claim(self, order_id: int) -> Order:
        def apply():
            order = self.get_order(order_id)
            if order.fiscal_status == RECEIPT_ISSUING and not order.fiscal_record_id:
                order.fiscal_status = None
            return order

        return run_in_transaction(
            self.db, apply, attempts=self.settings.OPTIMISTIC_RETRIES, label="order.receipt.release"
        )

    def attach_receipt(self, order_id: int, record_id: Optional[str], status: Optional[str]) -> Order:
        def apply():
            order = self.get_order(order_id)
            if order.fiscal_record_id:
                raise ConflictError("receipt_already_issued")
            order.fiscal_record_id = record_id
            order.fiscal_status = status
            return order

        return run_in_transaction(
            self.db, apply, attempts=self.settings.OPTIMISTIC_RETRIES, label="order.receipt"
        )
