# app/services/table_service.py
"""
Servicio de mesas y reservas - COMANDA

Cola FIFO de reservas por mesa: cuando una mesa queda libre se confirma la
reserva 'waiting' más antigua (created_at, id), como máximo una por evento.

Cada operación de varios pasos sobre una mesa corre bajo el lock de esa
mesa y en una única transacción; las filas versionadas (version_id) hacen
que una escritura concurrente desde otro proceso falle y se reintente.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.database import run_in_transaction
from app.core.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from app.core.locks import KeyedLocks
from app.core.tz import utcnow
from app.models.table import Reservation, ReservationStatus, RestaurantTable, TableStatus

logger = logging.getLogger(__name__)

# acción -> (estados de origen permitidos, estado destino, columna timestamp)
RESERVATION_CLOSE = {
    "complete": (
        {ReservationStatus.CONFIRMED, ReservationStatus.SEATED},
        ReservationStatus.COMPLETED,
        "completed_at",
    ),
    "cancel": (
        {ReservationStatus.WAITING, ReservationStatus.CONFIRMED, ReservationStatus.SEATED},
        ReservationStatus.CANCELLED,
        "cancelled_at",
    ),
}


class TableService:
    def __init__(self, db: Session, locks: KeyedLocks, settings: Settings):
        self.db = db
        self.locks = locks
        self.attempts = settings.OPTIMISTIC_RETRIES

    # ============================================
    # MESAS
    # ============================================

    def list_tables(self) -> List[RestaurantTable]:
        return self.db.query(RestaurantTable).order_by(RestaurantTable.name).all()

    def get_table(self, table_id: int) -> RestaurantTable:
        table = self.db.query(RestaurantTable).filter(RestaurantTable.id == table_id).first()
        if not table:
            raise NotFoundError("table_not_found")
        return table

    def create_table(self, name: str, seats: int = 4) -> RestaurantTable:
        existing = self.db.query(RestaurantTable).filter(RestaurantTable.name == name).first()
        if existing:
            raise ConflictError("table_exists")

        def insert():
            table = RestaurantTable(name=name, seats=seats, status=TableStatus.FREE.value)
            self.db.add(table)
            return table

        try:
            table = run_in_transaction(self.db, insert, attempts=1, label="table.create")
        except IntegrityError:
            raise ConflictError("table_exists")

        logger.info(f"[Tables] Mesa {table.name} creada ({table.seats} puestos)")
        return table

    def free_table(self, table_id: int) -> Dict:
        """
        Liberar mesa y promover al siguiente en cola.

        Una mesa retenida por una reserva 'confirmed' (aún sin sentar) no se
        libera: la reserva conserva la mesa y no hay promoción. Si la ocupa
        una reserva 'seated', esa reserva queda 'completed'.

        Returns:
            {"promoted": bool, "reservation_id": int | None}
        """
        with self.locks.hold(table_id):
            def apply():
                table = self.get_table(table_id)
                holder = self._holder(table)
                if holder is not None and holder.status == ReservationStatus.CONFIRMED.value:
                    return None
                if holder is not None and holder.status == ReservationStatus.SEATED.value:
                    holder.status = ReservationStatus.COMPLETED.value
                    holder.completed_at = utcnow()
                self._release(table)
                return self._promote(table)

            promoted = run_in_transaction(self.db, apply, attempts=self.attempts, label="table.free")

        logger.info(
            f"[Tables] Mesa #{table_id} liberada"
            f"{f', reserva #{promoted.id} confirmada' if promoted else ''}"
        )
        return {"promoted": promoted is not None, "reservation_id": promoted.id if promoted else None}

    def seat_table(self, table_id: int) -> RestaurantTable:
        """Sentar clientes sin reserva: solo desde 'free'"""
        with self.locks.hold(table_id):
            def apply():
                table = self.get_table(table_id)
                if table.status == TableStatus.RESERVED.value:
                    raise ConflictError("table_reserved")
                if table.status == TableStatus.OCCUPIED.value:
                    raise ConflictError("table_occupied")
                table.status = TableStatus.OCCUPIED.value
                table.reservation_id = None
                return table

            table = run_in_transaction(self.db, apply, attempts=self.attempts, label="table.seat")

        logger.info(f"[Tables] Mesa {table.name} ocupada (sin reserva)")
        return table

    def promote_next_waiter(self, table_id: int) -> Dict:
        """
        Confirmar la reserva en espera más antigua si la mesa está libre.
        Una mesa ocupada o reservada no promueve a nadie.

        Returns:
            {"promoted": bool, "reservation_id": int | None}
        """
        with self.locks.hold(table_id):
            def apply():
                table = self.get_table(table_id)
                if table.status != TableStatus.FREE.value:
                    return None
                return self._promote(table)

            promoted = run_in_transaction(self.db, apply, attempts=self.attempts, label="table.promote")

        if promoted:
            logger.info(f"[Tables] Mesa #{table_id}: reserva #{promoted.id} confirmada")
        return {"promoted": promoted is not None, "reservation_id": promoted.id if promoted else None}

    def _holder(self, table: RestaurantTable) -> Optional[Reservation]:
        if table.reservation_id is None:
            return None
        return self.db.get(Reservation, table.reservation_id)

    def _release(self, table: RestaurantTable) -> None:
        table.status = TableStatus.FREE.value
        table.reservation_id = None

    def _promote(self, table: RestaurantTable) -> Optional[Reservation]:
        # Los cambios pendientes deben verse en la consulta de la cola
        self.db.flush()
        waiter = self.db.query(Reservation).filter(
            Reservation.table_id == table.id,
            Reservation.status == ReservationStatus.WAITING.value,
        ).order_by(Reservation.created_at.asc(), Reservation.id.asc()).first()

        if waiter is None:
            return None

        waiter.status = ReservationStatus.CONFIRMED.value
        table.status = TableStatus.RESERVED.value
        table.reservation_id = waiter.id
        return waiter

    # ============================================
    # RESERVAS
    # ============================================

    def get_reservation(self, reservation_id: int) -> Reservation:
        reservation = self.db.query(Reservation).filter(Reservation.id == reservation_id).first()
        if not reservation:
            raise NotFoundError("reservation_not_found")
        return reservation

    def list_reservations(
        self,
        table_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 200,
    ) -> List[Reservation]:
        query = self.db.query(Reservation)
        if table_id is not None:
            query = query.filter(Reservation.table_id == table_id)
        if status:
            if status not in {s.value for s in ReservationStatus}:
                raise ValidationError("invalid_status")
            query = query.filter(Reservation.status == status)
        return query.order_by(Reservation.created_at.asc(), Reservation.id.asc()).limit(limit).all()

    def create_reservation(
        self,
        table_id: int,
        customer_name: str,
        customer_phone: Optional[str] = None,
        party_size: int = 2,
        requested_for: Optional[datetime] = None,
        note: Optional[str] = None,
    ) -> Reservation:
        """
        Mesa libre -> reserva 'confirmed' y mesa 'reserved'.
        Si no -> reserva 'waiting' en la cola de esa mesa.
        """
        if party_size < 1:
            raise ValidationError("invalid_party_size")
        with self.locks.hold(table_id):
            def apply():
                table = self.get_table(table_id)
                reservation = Reservation(
                    table_id=table.id,
                    customer_name=customer_name,
                    customer_phone=customer_phone,
                    party_size=party_size,
                    requested_for=requested_for,
                    note=note,
                    status=ReservationStatus.WAITING.value,
                )
                self.db.add(reservation)

                if table.status == TableStatus.FREE.value:
                    reservation.status = ReservationStatus.CONFIRMED.value
                    self.db.flush()  # id para la referencia de la mesa
                    table.status = TableStatus.RESERVED.value
                    table.reservation_id = reservation.id
                return reservation

            reservation = run_in_transaction(self.db, apply, attempts=self.attempts, label="reservation.create")

        logger.info(
            f"[Tables] Reserva #{reservation.id} para mesa #{table_id}: {reservation.status} "
            f"({reservation.customer_name}, {reservation.party_size} pax)"
        )
        return reservation

    def seat_reservation(self, reservation_id: int) -> Reservation:
        table_id = self.get_reservation(reservation_id).table_id

        with self.locks.hold(table_id):
            def apply():
                reservation = self.get_reservation(reservation_id)
                if reservation.status != ReservationStatus.CONFIRMED.value:
                    raise InvalidTransitionError("invalid_transition", reservation.status, "seat")

                table = self.get_table(reservation.table_id)
                if table.reservation_id != reservation.id and table.status != TableStatus.FREE.value:
                    raise ConflictError("table_unavailable")

                reservation.status = ReservationStatus.SEATED.value
                reservation.seated_at = utcnow()
                table.status = TableStatus.OCCUPIED.value
                table.reservation_id = reservation.id
                return reservation

            reservation = run_in_transaction(self.db, apply, attempts=self.attempts, label="reservation.seat")

        logger.info(f"[Tables] Reserva #{reservation.id} sentada en mesa #{table_id}")
        return reservation

    def complete_reservation(self, reservation_id: int) -> Tuple[Reservation, Optional[Reservation]]:
        return self._close_reservation(reservation_id, "complete")

    def cancel_reservation(self, reservation_id: int) -> Tuple[Reservation, Optional[Reservation]]:
        return self._close_reservation(reservation_id, "cancel")

    def _close_reservation(self, reservation_id: int, action: str) -> Tuple[Reservation, Optional[Reservation]]:
        """
        Cerrar una reserva. Si es la que ocupa la mesa, la mesa se libera y
        se promueve al siguiente en cola.

        Returns:
            (reserva cerrada, reserva promovida o None)
        """
        allowed, target, stamp = RESERVATION_CLOSE[action]
        table_id = self.get_reservation(reservation_id).table_id

        with self.locks.hold(table_id):
            def apply():
                reservation = self.get_reservation(reservation_id)
                if ReservationStatus(reservation.status) not in allowed:
                    raise InvalidTransitionError("invalid_transition", reservation.status, action)

                reservation.status = target.value
                setattr(reservation, stamp, utcnow())

                table = self.get_table(reservation.table_id)
                if table.reservation_id != reservation.id:
                    return reservation, None

                self._release(table)
                return reservation, self._promote(table)

            reservation, promoted = run_in_transaction(
                self.db, apply, attempts=self.attempts, label=f"reservation.{action}"
            )

        logger.info(
            f"[Tables] Reserva #{reservation.id} -> {reservation.status}"
            f"{f', reserva #{promoted.id} confirmada' if promoted else ''}"
        )
        return reservation, promoted
