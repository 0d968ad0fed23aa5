"""
Dependencias comunes de la API: settings, sesión, locks, proveedores y acceso
"""
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBasic, HTTPBasicCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.database import get_db
from app.core.locks import KeyedLocks
from app.core.security import verify_admin_password
from app.services.auth_service import AuthService
from app.services.fiscal_service import FiscalProvider
from app.services.payments_service import PaymentsProvider

basic_scheme = HTTPBasic(auto_error=False, realm="Area Riservata")
bearer_scheme = HTTPBearer(auto_error=False)

SESSION_COOKIE = "session_token"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_table_locks(request: Request) -> KeyedLocks:
    return request.app.state.table_locks


def get_payments_provider(request: Request) -> Optional[PaymentsProvider]:
    return request.app.state.payments_provider


def get_fiscal_provider(request: Request) -> Optional[FiscalProvider]:
    return request.app.state.fiscal_provider


def _unauthorized(detail: str = "unauthorized") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": 'Basic realm="Area Riservata"'},
    )


def _is_admin(credentials: Optional[HTTPBasicCredentials], settings: Settings) -> bool:
    return credentials is not None and verify_admin_password(credentials.password, settings)


def require_admin(
    credentials: Optional[HTTPBasicCredentials] = Depends(basic_scheme),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    """HTTP Basic: cualquier usuario, contraseña = ADMIN_PASSWORD. Sin contraseña configurada, abierto."""
    if not settings.ADMIN_PASSWORD:
        return {"role": "admin"}
    if credentials is None:
        raise _unauthorized()
    if not _is_admin(credentials, settings):
        raise _unauthorized("wrong_password")
    return {"role": "admin"}


def require_staff(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    credentials: Optional[HTTPBasicCredentials] = Depends(basic_scheme),
    session_token: Optional[str] = Cookie(None),
) -> dict:
    """
    Camarero (token de sesión por PIN, header Bearer o cookie) o admin (HTTP Basic).
    """
    auth_service = AuthService(db, settings)

    token = bearer.credentials if bearer else session_token
    if token:
        staff = auth_service.get_staff(token)
        if staff:
            return staff

    if _is_admin(credentials, settings):
        return {"role": "admin"}

    if auth_service.access_is_open():
        return {"role": "admin"}

    raise _unauthorized()

