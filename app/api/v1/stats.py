"""
Estadísticas de ventas por día y por rango (hora local del restaurante)
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.dependencies import get_app_settings, require_admin
from app.core.config import Settings
from app.core.database import get_db
from app.core.tz import local_today
from app.services.stats_service import StatsService

router = APIRouter(prefix="/stats", tags=["stats"], dependencies=[Depends(require_admin)])


@router.get("/day")
def day_stats(
    day: Optional[date] = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """
    24 franjas horarias (hora local), total, conteo por estado y top de productos.
    Sin 'day' se usa el día de hoy en RESTAURANT_TIMEZONE.
    """
    day = day or local_today(settings.RESTAURANT_TIMEZONE)
    return {"ok": True, **StatsService(db, settings).day_stats(day)}


@router.get("/range")
def range_stats(
    start: date = Query(..., alias="from"),
    end: date = Query(..., alias="to"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    return {"ok": True, **StatsService(db, settings).range_stats(start, end)}
