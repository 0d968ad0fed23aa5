"""
Endpoints de reservas (cola FIFO por mesa)
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import require_staff
from app.api.v1.tables import get_table_service
from app.schemas.table import ReservationCreate, ReservationResponse
from app.services.table_service import TableService

router = APIRouter(prefix="/reservations", tags=["reservations"], dependencies=[Depends(require_staff)])


def _reservation(reservation) -> dict:
    return ReservationResponse.model_validate(reservation).model_dump(mode="json")


def _closed_result(reservation, promoted) -> dict:
    return {
        "ok": True,
        "reservation": _reservation(reservation),
        "promoted": _reservation(promoted) if promoted else None,
    }


@router.get("")
def list_reservations(
    table_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    service: TableService = Depends(get_table_service),
):
    reservations = service.list_reservations(table_id=table_id, status=status, limit=limit)
    return {"ok": True, "reservations": [_reservation(r) for r in reservations]}


@router.post("")
def create_reservation(data: ReservationCreate, service: TableService = Depends(get_table_service)):
    """
    Crear reserva: 'confirmed' si la mesa está libre, 'waiting' si no
    """
    reservation = service.create_reservation(
        table_id=data.table_id,
        customer_name=data.customer_name,
        customer_phone=data.customer_phone,
        party_size=data.party_size,
        requested_for=data.requested_for,
        note=data.note,
    )
    return {"ok": True, "reservation": _reservation(reservation)}


@router.get("/{reservation_id}")
def get_reservation(reservation_id: int, service: TableService = Depends(get_table_service)):
    return {"ok": True, "reservation": _reservation(service.get_reservation(reservation_id))}


@router.post("/{reservation_id}/seat")
def seat_reservation(reservation_id: int, service: TableService = Depends(get_table_service)):
    return {"ok": True, "reservation": _reservation(service.seat_reservation(reservation_id))}


@router.post("/{reservation_id}/complete")
def complete_reservation(reservation_id: int, service: TableService = Depends(get_table_service)):
    return _closed_result(*service.complete_reservation(reservation_id))


@router.post("/{reservation_id}/cancel")
def cancel_reservation(reservation_id: int, service: TableService = Depends(get_table_service)):
    return _closed_result(*service.cancel_reservation(reservation_id))
