"""
Utilidades de zona horaria del restaurante

Un único punto de conversión día local <-> UTC. Los días de cambio de hora
duran 23 o 25 horas; las horas locales se calculan siempre desde UTC.
"""
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Tuple
from zoneinfo import ZoneInfo


@lru_cache()
def get_zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite devuelve datetimes sin tzinfo: se asumen UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_day(value: str) -> date:
    return date.fromisoformat(value)


def local_midnight_utc(day: date, tz_name: str) -> datetime:
    """Medianoche local de `day` expresada en UTC."""
    local = datetime.combine(day, time.min, tzinfo=get_zone(tz_name))
    return local.astimezone(timezone.utc)


def day_bounds_utc(day: date, tz_name: str) -> Tuple[datetime, datetime]:
    """
    Límites [inicio, fin) en UTC del día local `day`.

    Args:
        day: día calendario en la zona del restaurante
        tz_name: zona IANA, p.ej. "Europe/Rome"
    """
    return local_midnight_utc(day, tz_name), local_midnight_utc(day + timedelta(days=1), tz_name)


def range_bounds_utc(start: date, end: date, tz_name: str) -> Tuple[datetime, datetime]:
    """Límites [inicio de `start`, fin de `end`) en UTC, ambos días incluidos."""
    return local_midnight_utc(start, tz_name), local_midnight_utc(end + timedelta(days=1), tz_name)


def to_local(value: datetime, tz_name: str) -> datetime:
    return as_utc(value).astimezone(get_zone(tz_name))


def local_today(tz_name: str) -> date:
    return utcnow().astimezone(get_zone(tz_name)).date()
