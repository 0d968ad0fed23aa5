"""
Configuración del local (clave -> valor JSON)
"""
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.api.dependencies import require_admin
from app.core.database import get_db
from app.services.settings_service import SettingsService

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("")
def get_settings(db: Session = Depends(get_db)):
    """Configuración pública; las claves secretas (staff_pin) no se devuelven"""
    return {"ok": True, "settings": SettingsService(db).get_all()}


@router.post("", dependencies=[Depends(require_admin)])
def update_settings(
    values: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    return {"ok": True, "settings": SettingsService(db).set_many(values)}
