"""
Sistema Centralizado de Manejo de Errores

Proporciona:
- Tipos de error categorizados (ValidationError, CalculationError, etc.)
- Mensajes amigables para usuarios del dashboard
- Correlation IDs para soporte técnico
- Contexto estructurado (métrica, campo, valor) para renderizar el error
- Registro de errores para métricas
"""

from enum import Enum
from typing import Optional, Any, Dict, List
from dataclasses import dataclass

from src.utils.logger import (
    get_logger,
    new_correlation_id,
    get_correlation_id,
)

logger = get_logger(__name__)


# ============================================================================
# ERROR CATEGORIES
# ============================================================================

class ErrorCategory(str, Enum):
    """Categorías de error para clasificación."""
    VALIDATION = "VALIDATION"
    CALCULATION = "CALCULATION"
    NOT_FOUND = "NOT_FOUND"
    UNAVAILABLE = "UNAVAILABLE"
    TRANSIENT = "TRANSIENT"
    INTERNAL = "INTERNAL"


class ErrorSeverity(str, Enum):
    """Severidad del error para priorización."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# ============================================================================
# USER-FRIENDLY MESSAGES
# ============================================================================

USER_MESSAGES = {
    ErrorCategory.VALIDATION: (
        "Los datos de la métrica no son válidos.\n"
        "Revisa los valores de entrada."
    ),
    ErrorCategory.CALCULATION: (
        "No se pudo calcular la métrica con los datos disponibles."
    ),
    ErrorCategory.NOT_FOUND: (
        "La métrica solicitada no existe o no tiene datos."
    ),
    ErrorCategory.UNAVAILABLE: (
        "El servicio de datos no está disponible en este momento.\n"
        "Por favor intenta en unos momentos."
    ),
    ErrorCategory.TRANSIENT: (
        "Problema temporal de conexión con la base de datos.\n"
        "Por favor intenta nuevamente."
    ),
    ErrorCategory.INTERNAL: (
        "Ocurrió un error inesperado.\n"
        "Nuestro equipo ha sido notificado."
    ),
}


# ============================================================================
# ERROR CONTEXT
# ============================================================================

@dataclass
class ErrorContext:
    """Contexto adicional para un error."""
    metric_id: Optional[str] = None
    field: Optional[str] = None
    value: Any = None
    operation: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


# ============================================================================
# CUSTOM EXCEPTIONS
# ============================================================================

class MetricsError(Exception):
    """
    Excepción base del núcleo de métricas.

    Incluye categoría, severidad y mensaje amigable.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        user_message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.user_message = user_message or USER_MESSAGES.get(
            category, USER_MESSAGES[ErrorCategory.INTERNAL]
        )
        self.context = context or ErrorContext()
        self.original_error = original_error
        self.correlation_id = get_correlation_id() or new_correlation_id()

    @property
    def metric_id(self) -> Optional[str]:
        return self.context.metric_id

    def get_user_message(self, include_reference: bool = True) -> str:
        """Obtiene el mensaje para mostrar al usuario."""
        if include_reference and self.severity in (
            ErrorSeverity.HIGH, ErrorSeverity.CRITICAL
        ):
            return f"{self.user_message}\n\nReferencia: {self.correlation_id[:8]}"
        return self.user_message

    def to_dict(self) -> Dict[str, Any]:
        """Convierte el error a diccionario para logging y respuestas."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "correlation_id": self.correlation_id,
            "context": {
                "metric_id": self.context.metric_id,
                "field": self.context.field,
                "value": self.context.value,
                "operation": self.context.operation,
                "extra": self.context.extra,
            },
            "original_error": str(self.original_error) if self.original_error else None,
        }


class ValidationError(MetricsError):
    """
    Datos inválidos: campos faltantes, valor fuera de rango,
    población insuficiente u orden de percentiles incorrecto.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        fields: Optional[List[str]] = None,
        metric_id: Optional[str] = None,
        user_message: Optional[str] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        self.fields = list(fields) if fields else ([field] if field else [])
        kwargs.setdefault("context", ErrorContext(
            metric_id=metric_id,
            field=field or (", ".join(self.fields) if self.fields else None),
            value=value,
        ))
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            user_message=user_message,
            **kwargs
        )


class CalculationError(MetricsError):
    """Tipo de métrica no soportado o resultado aritmético no finito."""

    def __init__(
        self,
        message: str,
        metric_id: Optional[str] = None,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs
    ):
        kwargs.setdefault("context", ErrorContext(
            metric_id=metric_id, field=field, value=value
        ))
        super().__init__(
            message=message,
            category=ErrorCategory.CALCULATION,
            severity=ErrorSeverity.LOW,
            **kwargs
        )


class NotFoundError(MetricsError):
    """Métrica desconocida o sin datos en el backing store."""

    def __init__(self, message: str, metric_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("context", ErrorContext(metric_id=metric_id))
        super().__init__(
            message=message,
            category=ErrorCategory.NOT_FOUND,
            severity=ErrorSeverity.LOW,
            **kwargs
        )


class CircuitOpenError(MetricsError):
    """El circuit breaker rechaza la llamada sin intentar I/O."""

    def __init__(
        self,
        message: str,
        dependency: str = "backing_store",
        retry_after_seconds: Optional[float] = None,
        **kwargs
    ):
        self.dependency = dependency
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message=message,
            category=ErrorCategory.UNAVAILABLE,
            severity=ErrorSeverity.HIGH,
            **kwargs
        )


class ServiceUnavailableError(MetricsError):
    """
    El backing store se considera caído.

    Distinto de NotFoundError para que el caller pueda diferenciar
    "no hay datos" de "la base de datos no responde".
    """

    def __init__(
        self,
        message: str,
        metric_id: Optional[str] = None,
        circuit_state: Optional[str] = None,
        **kwargs
    ):
        self.circuit_state = circuit_state
        kwargs.setdefault("context", ErrorContext(
            metric_id=metric_id,
            extra={"circuit_state": circuit_state},
        ))
        super().__init__(
            message=message,
            category=ErrorCategory.UNAVAILABLE,
            severity=ErrorSeverity.HIGH,
            **kwargs
        )


class TransientError(MetricsError):
    """
    Fallo temporal del backing store (timeout, red, 5xx).

    Los adaptadores de datos lo lanzan para marcar un error reintentable.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.TRANSIENT,
            severity=ErrorSeverity.MEDIUM,
            **kwargs
        )


# ============================================================================
# ERROR REGISTRY (para métricas)
# ============================================================================

class ErrorRegistry:
    """
    Registro de errores para métricas y análisis.

    Permite trackear errores por categoría, severidad, etc.
    """

    def __init__(self):
        self._counts: Dict[str, int] = {}
        self._recent_errors: list = []
        self._max_recent = 100

    def record(self, error: MetricsError) -> None:
        """Registra un error en el registry."""
        key = f"{error.category.value}:{error.severity.value}"
        self._counts[key] = self._counts.get(key, 0) + 1

        self._recent_errors.append({
            "correlation_id": error.correlation_id,
            "category": error.category.value,
            "metric_id": error.context.metric_id,
            "message": error.message[:100],
        })
        if len(self._recent_errors) > self._max_recent:
            self._recent_errors.pop(0)

    def get_counts(self) -> Dict[str, int]:
        """Obtiene conteo de errores por categoría:severidad."""
        return self._counts.copy()

    def get_recent(self, limit: int = 10) -> list:
        """Obtiene los errores más recientes."""
        return self._recent_errors[-limit:]

    def reset(self) -> None:
        """Resetea los contadores."""
        self._counts.clear()
        self._recent_errors.clear()


# Instancia global del registry
error_registry = ErrorRegistry()


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorContext",
    "MetricsError",
    "ValidationError",
    "CalculationError",
    "NotFoundError",
    "CircuitOpenError",
    "ServiceUnavailableError",
    "TransientError",
    "ErrorRegistry",
    "error_registry",
    "USER_MESSAGES",
]
