# app/services/stats_service.py
"""
Estadísticas de ventas (solo lectura)

Proyección pura sobre órdenes: buckets por hora (un día) o por día (rango),
ingresos solo de órdenes 'completed', ranking de productos por cantidad.
"""
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List

from sqlalchemy.orm import Session, selectinload

from app.core.config import Settings
from app.core.errors import ValidationError
from app.core.tz import day_bounds_utc, range_bounds_utc, to_local
from app.models.order import Order, OrderStatus
from app.schemas.order import money_str

MAX_RANGE_DAYS = 366
TOP_ITEMS_LIMIT = 10

ZERO = Decimal("0")


def _status_counts(orders: List[Order]) -> Dict[str, int]:
    counts = {s.value: 0 for s in OrderStatus}
    for order in orders:
        counts[order.status] = counts.get(order.status, 0) + 1
    return counts


def top_items(orders: Iterable[Order], limit: int = TOP_ITEMS_LIMIT) -> List[Dict]:
    qty = defaultdict(int)
    revenue = defaultdict(lambda: ZERO)
    for order in orders:
        if order.status != OrderStatus.COMPLETED.value:
            continue
        for item in order.items:
            qty[item.name] += item.qty
            revenue[item.name] += Decimal(item.price) * item.qty

    ranked = sorted(qty, key=lambda name: (-qty[name], -revenue[name], name))
    return [
        {"name": name, "qty": qty[name], "revenue": money_str(revenue[name])}
        for name in ranked[:limit]
    ]


def aggregate_day(orders: List[Order], day: date, tz_name: str) -> Dict:
    """
    Agregar las órdenes de un día en 24 buckets por hora local.

    La suma de revenue de los buckets es exactamente el total.
    """
    bucket_orders = [0] * 24
    bucket_revenue = [ZERO] * 24
    total = ZERO

    for order in orders:
        hour = to_local(order.created_at, tz_name).hour
        bucket_orders[hour] += 1
        if order.status == OrderStatus.COMPLETED.value:
            amount = Decimal(order.total)
            bucket_revenue[hour] += amount
            total += amount

    return {
        "day": day.isoformat(),
        "timezone": tz_name,
        "total": money_str(total),
        "orders": len(orders),
        "by_status": _status_counts(orders),
        "per_bucket": [
            {
                "hour": hour,
                "label": f"{hour:02d}:00",
                "orders": bucket_orders[hour],
                "revenue": money_str(bucket_revenue[hour]),
            }
            for hour in range(24)
        ],
        "top_items": top_items(orders),
    }


def aggregate_range(orders: List[Order], start: date, end: date, tz_name: str) -> Dict:
    """Igual que aggregate_day pero con un bucket por día local (ambos extremos incluidos)"""
    days = [start + timedelta(days=i) for i in range((end - start).days + 1)]
    bucket_orders = {d: 0 for d in days}
    bucket_revenue = {d: ZERO for d in days}
    total = ZERO

    for order in orders:
        local_day = to_local(order.created_at, tz_name).date()
        if local_day not in bucket_orders:
            continue
        bucket_orders[local_day] += 1
        if order.status == OrderStatus.COMPLETED.value:
            amount = Decimal(order.total)
            bucket_revenue[local_day] += amount
            total += amount

    return {
        "from": start.isoformat(),
        "to": end.isoformat(),
        "timezone": tz_name,
        "total": money_str(total),
        "orders": len(orders),
        "by_status": _status_counts(orders),
        "per_bucket": [
            {
                "day": d.isoformat(),
                "orders": bucket_orders[d],
                "revenue": money_str(bucket_revenue[d]),
            }
            for d in days
        ],
        "top_items": top_items(orders),
    }


class StatsService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.tz_name = settings.RESTAURANT_TIMEZONE

    def _orders_between(self, start, end) -> List[Order]:
        return self.db.query(Order).options(selectinload(Order.items)).filter(
            Order.created_at >= start,
            Order.created_at < end,
        ).all()

    def day_stats(self, day: date) -> Dict:
        start, end = day_bounds_utc(day, self.tz_name)
        return aggregate_day(self._orders_between(start, end), day, self.tz_name)

    def range_stats(self, start: date, end: date) -> Dict:
        if start > end:
            raise ValidationError("invalid_range")
        if (end - start).days + 1 > MAX_RANGE_DAYS:
            raise ValidationError("range_too_long")
        lower, upper = range_bounds_utc(start, end, self.tz_name)
        return aggregate_range(self._orders_between(lower, upper), start, end, self.tz_name)
