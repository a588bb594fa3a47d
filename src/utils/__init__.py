"""
Utilidades del Sistema

Módulo que exporta todas las utilidades:
- Logger: Logging estructurado con contexto
- Errors: Manejo centralizado de errores
- Metrics: Contadores, gauges, histogramas, Prometheus
"""

# Logger
from src.utils.logger import (
    get_logger,
    setup_logging,
    bind_context,
    clear_context,
    new_correlation_id,
    get_correlation_id,
    LogContext,
    with_context,
    log_exception,
    log_performance,
)

# Metrics
from src.utils.metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
    registry,
    Timer,
    get_metrics,
    get_prometheus_metrics,
    # Métricas pre-definidas
    cache_hits,
    cache_misses,
    operation_duration,
    backing_store_calls,
    backing_store_retries,
    circuit_state_gauge,
    in_flight_computations,
)

# Errors
from src.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    MetricsError,
    ValidationError,
    CalculationError,
    NotFoundError,
    CircuitOpenError,
    ServiceUnavailableError,
    TransientError,
    ErrorRegistry,
    error_registry,
)

__all__ = [
    # Logger
    "get_logger",
    "setup_logging",
    "bind_context",
    "clear_context",
    "new_correlation_id",
    "get_correlation_id",
    "LogContext",
    "with_context",
    "log_exception",
    "log_performance",
    # Metrics
    "Counter",
    "Gauge",
    "Histogram",
    "MetricsRegistry",
    "registry",
    "Timer",
    "get_metrics",
    "get_prometheus_metrics",
    "cache_hits",
    "cache_misses",
    "operation_duration",
    "backing_store_calls",
    "backing_store_retries",
    "circuit_state_gauge",
    "in_flight_computations",
    # Errors
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
]
