"""
Modelos Order y OrderItem
"""
import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, Numeric
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.tz import utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELED = "canceled"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"


class OrderMode(str, enum.Enum):
    TABLE = "table"
    TAKEAWAY = "takeaway"
    HOME = "home"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    table_code = Column(String(50), nullable=True, index=True)  # None = asporto / domicilio

    total = Column(Numeric(10, 2), nullable=False)

    # Estado
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    acknowledged = Column(Boolean, nullable=False, default=False)

    # Pago
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value, index=True)
    payment_method = Column(String(20), nullable=True)  # 'cash', 'card', 'online'

    # Modalidad y cliente
    order_mode = Column(String(20), nullable=False, default=OrderMode.TABLE.value)
    customer_name = Column(String(200), nullable=True)
    customer_phone = Column(String(30), nullable=True)
    customer_note = Column(Text, nullable=True)

    # Recibo fiscal
    fiscal_record_id = Column(String(100), nullable=True)
    fiscal_status = Column(String(30), nullable=True)

    # Timestamps (sin updated_at: un 'ack' repetido no debe tocar nada)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    version_id = Column(Integer, nullable=False)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self):
        return f"<Order #{self.id} {self.status}/{self.payment_status} Total:{self.total}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    name = Column(String(300), nullable=False)  # nombre desnormalizado, con modificadores
    price = Column(Numeric(10, 2), nullable=False)
    qty = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")

    @property
    def subtotal(self):
        return self.price * self.qty
