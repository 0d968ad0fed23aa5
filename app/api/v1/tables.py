"""
Endpoints de mesas
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.dependencies import get_app_settings, get_table_locks, require_admin, require_staff
from app.core.config import Settings
from app.core.database import get_db
from app.core.locks import KeyedLocks
from app.schemas.table import TableCreate, TableResponse
from app.services.table_service import TableService

router = APIRouter(prefix="/tables", tags=["tables"])


def get_table_service(
    db: Session = Depends(get_db),
    locks: KeyedLocks = Depends(get_table_locks),
    settings: Settings = Depends(get_app_settings),
) -> TableService:
    return TableService(db, locks, settings)


def _table(table) -> dict:
    return TableResponse.model_validate(table).model_dump(mode="json")


@router.get("", dependencies=[Depends(require_staff)])
def list_tables(service: TableService = Depends(get_table_service)):
    return {"ok": True, "tables": [_table(t) for t in service.list_tables()]}


@router.post("", dependencies=[Depends(require_admin)])
def create_table(data: TableCreate, service: TableService = Depends(get_table_service)):
    return {"ok": True, "table": _table(service.create_table(data.name, data.seats))}


@router.post("/{table_id}/free", dependencies=[Depends(require_staff)])
def free_table(table_id: int, service: TableService = Depends(get_table_service)):
    """
    Liberar mesa. Si hay reservas en cola, la más antigua queda confirmada
    y la mesa pasa a 'reserved'.
    """
    result = service.free_table(table_id)
    return {
        "ok": True,
        "table": _table(service.get_table(table_id)),
        "promoted": result["promoted"],
        "reservation_id": result["reservation_id"],
    }


@router.post("/{table_id}/seat", dependencies=[Depends(require_staff)])
def seat_walk_in(table_id: int, service: TableService = Depends(get_table_service)):
    """Ocupar mesa libre sin reserva"""
    return {"ok": True, "table": _table(service.seat_table(table_id))}
