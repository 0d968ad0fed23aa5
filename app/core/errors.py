"""
Errores de dominio

Cada error lleva un código corto (string) que viaja tal cual al cliente
en el sobre {"ok": false, "error": "<code>"}.
"""
from typing import Optional


class ComandaError(Exception):
    status_code = 500
    default_code = "internal_error"

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None):
        self.code = code or self.default_code
        self.message = message or self.code
        super().__init__(self.message)


class ValidationError(ComandaError):
    status_code = 400
    default_code = "invalid_request"


class NotFoundError(ComandaError):
    status_code = 404
    default_code = "not_found"


class ConflictError(ComandaError):
    status_code = 409
    default_code = "conflict"


class InvalidTransitionError(ConflictError):
    default_code = "invalid_transition"

    def __init__(self, code: Optional[str] = None, current: Optional[str] = None, action: Optional[str] = None):
        self.current = current
        self.action = action
        message = None
        if current and action:
            message = f"No se puede aplicar '{action}' desde '{current}'"
        super().__init__(code, message)


class TransientDatastoreError(ComandaError):
    status_code = 503
    default_code = "datastore_unavailable"


class ProviderError(ComandaError):
    """Fallo de un proveedor externo (pagos, fiscal)"""
    status_code = 502
    default_code = "provider_error"

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(code, message)
        if status_code is not None:
            self.status_code = status_code
