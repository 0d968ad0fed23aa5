import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from app.core.config import Settings


def verify_pin(plain_pin: str, expected_pin: str) -> bool:
    """Comparar PIN en texto plano (tiempo constante)"""
    if not plain_pin or not expected_pin:
        return False
    return secrets.compare_digest(plain_pin.encode("utf-8"), expected_pin.encode("utf-8"))


def verify_admin_password(password: str, settings: Settings) -> bool:
    return verify_pin(password or "", settings.ADMIN_PASSWORD)


def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})

    encoded_jwt = jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )
    return encoded_jwt


def decode_token(token: str, settings: Settings) -> Optional[dict]:
    """
    Decodificar y validar token JWT

    Args:
        token: Token JWT a decodificar

    Returns:
        Payload del token si es válido, None si no es válido
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
        return payload
    except JWTError:
        return None
