"""
Endpoints de autenticación - Sesión de camarero por PIN
"""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from app.api.dependencies import SESSION_COOKIE, get_app_settings, require_staff
from app.core.config import Settings
from app.core.database import get_db
from app.services.auth_service import AuthService


router = APIRouter(prefix="/auth", tags=["auth"])


# ============================================
# SCHEMAS
# ============================================

class PinLoginRequest(BaseModel):
    pin: str = Field(..., min_length=1, max_length=16)


# ============================================
# ENDPOINTS
# ============================================

@router.post("/pin")
def login_with_pin(
    data: PinLoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings)
):
    """
    Login del camarero con el PIN del local

    Devuelve el token y además lo deja en la cookie de sesión (httponly).
    """
    token = AuthService(db, settings).login_with_pin(data.pin)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid_pin"
        )

    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return {
        "ok": True,
        "access_token": token,
        "token_type": "bearer",
        "role": "waiter"
    }


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE)
    return {"ok": True}


@router.get("/me")
def me(staff: dict = Depends(require_staff)):
    return {"ok": True, "role": staff["role"]}
