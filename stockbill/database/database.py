from typing import Callable, TypeVar
from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from stockbill.core.config import settings
from stockbill.core.exceptions import ConflictError
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Códigos de PostgreSQL que indican un conflicto reintentable
# 40001 = serialization_failure, 40P01 = deadlock_detected
RETRYABLE_PGCODES = {"40001", "40P01"}


def _engine_options() -> dict:
    if settings.is_sqlite:
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
            "echo": settings.DEBUG,
        }
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "echo": settings.DEBUG,
    }


engine = create_engine(settings.database_url, **_engine_options())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Genera una sesión de base de datos por request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def tenant_query(session: Session, model, tenant_id):
    """
    Query filtrada por tenant.

    Todas las lecturas y escrituras de modelos multi-tenant pasan por aquí;
    un modelo sin `tenant_id` no puede consultarse con este helper.
    """
    if not hasattr(model, "tenant_id"):
        raise TypeError(f"{model.__name__} no es un modelo multi-tenant")
    return session.query(model).filter(model.tenant_id == tenant_id)


def is_retryable_conflict(exc: Exception) -> bool:
    if isinstance(exc, IntegrityError):
        return True
    if isinstance(exc, DBAPIError):
        return getattr(exc.orig, "pgcode", None) in RETRYABLE_PGCODES
    return False


def run_in_transaction(
    db: Session,
    operation: Callable[[], T],
    retries: int = None,
) -> T:
    """
    Ejecutar `operation` como una unidad atómica.

    Hace commit si la operación termina sin errores y rollback ante
    cualquier excepción. Los conflictos de concurrencia detectados por la
    base de datos (violaciones de unicidad, fallos de serialización,
    deadlocks) se reintentan hasta `retries` veces y luego se reportan
    como ConflictError. Cualquier otro error se propaga tal cual.
    """
    if retries is None:
        retries = settings.TRANSACTION_CONFLICT_RETRIES

    attempt = 0
    while True:
        try:
            result = operation()
            db.commit()
            return result
        except DBAPIError as e:
            db.rollback()
            if not is_retryable_conflict(e):
                raise
            if attempt >= retries:
                logger.error(f"Conflict persisted after {attempt + 1} attempt(s): {e.orig}", exc_info=True)
                raise ConflictError() from e
            attempt += 1
            logger.warning(f"Retrying transaction after storage conflict (attempt {attempt}): {e.orig}")
        except Exception:
            db.rollback()
            raise
