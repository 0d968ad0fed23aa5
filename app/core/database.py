"""
Conexión a base de datos (SQLAlchemy)

El engine y la fábrica de sesiones se crean por aplicación (create_app) y
viven en app.state; no hay sesión global.
"""
import logging
from typing import Callable, Generator, TypeVar

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import ConflictError, TransientDatastoreError

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar("T")


def build_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Las sesiones pueden cruzar hilos del threadpool de FastAPI
        connect_args = {"check_same_thread": False, "timeout": 15}
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Crear tablas si no existen"""
    # Registrar modelos en Base.metadata
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def run_in_transaction(db: Session, operation: Callable[[], T], attempts: int = 3, label: str = "op") -> T:
    """
    Ejecuta `operation` y hace commit. Si otra transacción modificó una
    fila versionada entre la lectura y la escritura (StaleDataError), hace
    rollback y vuelve a ejecutar desde una lectura fresca.

    Args:
        db: sesión de la petición
        operation: callable sin argumentos que lee y modifica vía `db`
        attempts: intentos máximos antes de ConflictError
        label: etiqueta para logs
    """
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.warning(f"[DB] Conflicto de versión en {label} (intento {attempt}/{attempts})")
        except OperationalError as e:
            db.rollback()
            logger.error(f"[DB] Error de conexión en {label}: {e}")
            raise TransientDatastoreError() from e
        except Exception:
            db.rollback()
            raise

    raise ConflictError("concurrent_modification")
