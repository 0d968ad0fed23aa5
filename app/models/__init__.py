"""
Exportar todos los modelos
"""
from app.models.order import Order, OrderItem, OrderStatus, PaymentStatus, OrderMode
from app.models.table import RestaurantTable, Reservation, TableStatus, ReservationStatus
from app.models.setting import Setting

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "OrderMode",
    "RestaurantTable",
    "Reservation",
    "TableStatus",
    "ReservationStatus",
    "Setting"
]
