"""
Excepciones de dominio para facturación e inventario.

Cada excepción lleva un `kind` estable que el frontend puede usar para
distinguir el tipo de error, un código HTTP y contexto adicional
(ids, transición intentada, límites numéricos). El mensaje es el texto
visible para el usuario.
"""
from typing import Any, Dict, Optional


class AppException(Exception):
    """Base de todas las excepciones de la aplicación."""

    status_code: int = 500
    kind: str = "INTERNAL_ERROR"
    default_message: str = "Ocurrió un error inesperado"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "message": self.message,
            "status_code": self.status_code,
            "details": {k: _jsonable(v) for k, v in self.context.items()} or None,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return str(value)


class AuthenticationError(AppException):
    status_code = 401
    kind = "UNAUTHORIZED"
    default_message = "No se pudieron validar las credenciales"


class PermissionDeniedError(AppException):
    status_code = 403
    kind = "FORBIDDEN"
    default_message = "No tienes permisos para realizar esta acción"


class NotFoundError(AppException):
    """Entidad inexistente o fuera del tenant actual."""

    status_code = 404
    kind = "NOT_FOUND"
    default_message = "Recurso no encontrado"


class BusinessRuleViolation(AppException):
    status_code = 400
    kind = "BUSINESS_RULE_VIOLATION"
    default_message = "La operación viola una regla de negocio"


class InvalidTransitionError(BusinessRuleViolation):
    kind = "INVALID_TRANSITION"
    default_message = "La factura no admite esta operación en su estado actual"


class InsufficientStockError(BusinessRuleViolation):
    kind = "INSUFFICIENT_STOCK"
    default_message = "Stock insuficiente"


class PaymentExceedsBalanceError(BusinessRuleViolation):
    kind = "PAYMENT_EXCEEDS_BALANCE"
    default_message = "El pago excede el saldo pendiente de la factura"


class QuotaExceededError(BusinessRuleViolation):
    status_code = 403
    kind = "QUOTA_EXCEEDED"
    default_message = "Límite mensual de facturas alcanzado"


class ConflictError(AppException):
    """Conflicto de concurrencia detectado en la base de datos."""

    status_code = 409
    kind = "CONFLICT"
    default_message = "Otra operación modificó los mismos datos. Intenta de nuevo"
