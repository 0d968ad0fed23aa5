import logging
from typing import Optional
from sqlalchemy.orm import Session
from app.core.config import Settings
from app.core.security import verify_pin, create_access_token, decode_token
from app.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

STAFF_ROLES = {"waiter", "admin"}


class AuthService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def staff_pin(self) -> str:
        """PIN del personal: setting 'staff_pin' o STAFF_PIN del entorno"""
        pin = SettingsService(self.db).get("staff_pin")
        return pin or self.settings.STAFF_PIN

    def access_is_open(self) -> bool:
        """Sin contraseña admin ni PIN configurados, las rutas de personal quedan abiertas"""
        return not self.settings.ADMIN_PASSWORD and not self.staff_pin()

    def login_with_pin(self, pin: str) -> Optional[str]:
        if not verify_pin((pin or "").strip(), self.staff_pin()):
            logger.warning("[Auth] ❌ PIN no válido")
            return None

        logger.info("[Auth] ✅ Sesión de camarero iniciada")
        return create_access_token(data={"sub": "waiter", "role": "waiter"}, settings=self.settings)

    def get_staff(self, token: str) -> Optional[dict]:
        """Obtener rol desde token"""
        payload = decode_token(token, self.settings)
        if not payload:
            return None

        role = payload.get("role")
        if role not in STAFF_ROLES:
            return None
        return {"role": role}
