"""
Modelos RestaurantTable y Reservation

Ambas tablas llevan version_id: cada UPDATE verifica la versión leída y
falla con StaleDataError si otra transacción la cambió antes.
"""
import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.tz import utcnow


class TableStatus(str, enum.Enum):
    FREE = "free"
    OCCUPIED = "occupied"
    RESERVED = "reserved"


class ReservationStatus(str, enum.Enum):
    WAITING = "waiting"
    CONFIRMED = "confirmed"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RestaurantTable(Base):
    __tablename__ = "restaurant_tables"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)  # también es el table_code de las órdenes
    seats = Column(Integer, nullable=False, default=4)

    status = Column(String(20), nullable=False, default=TableStatus.FREE.value)
    # Reserva que ocupa la mesa ahora (sin FK para evitar ciclo con reservations)
    reservation_id = Column(Integer, nullable=True)

    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = Column(Integer, nullable=False)

    reservations = relationship("Reservation", back_populates="table")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self):
        return f"<RestaurantTable #{self.id} {self.name} {self.status}>"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    table_id = Column(Integer, ForeignKey("restaurant_tables.id"), nullable=False, index=True)

    # Cliente
    customer_name = Column(String(200), nullable=False)
    customer_phone = Column(String(30), nullable=True)
    party_size = Column(Integer, nullable=False, default=2)
    requested_for = Column(DateTime(timezone=True), nullable=True)  # se guarda, no se agenda
    note = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=ReservationStatus.WAITING.value, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    seated_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    version_id = Column(Integer, nullable=False)

    table = relationship("RestaurantTable", back_populates="reservations")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self):
        return f"<Reservation #{self.id} Table:{self.table_id} {self.status}>"
