"""
Metrics Collection

Sistema de métricas operativas del núcleo (cache, backing store,
circuit breaker). Exportable en formato Prometheus.
"""

import time
from typing import Dict, Any, Optional, cast
from collections import defaultdict
from threading import Lock

from src.utils.logger import get_logger

logger = get_logger(__name__)


def _labels_key(labels: Dict[str, str] = None) -> str:
    """Genera una clave única para un conjunto de labels."""
    if not labels:
        return ""
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


# ============================================================================
# METRIC TYPES
# ============================================================================

class Counter:
    """
    Contador que solo puede incrementar.

    Uso:
        cache_hits = Counter("metrics_cache_hits_total", "Aciertos de cache")
        cache_hits.inc()
        cache_hits.inc(labels={"metric_id": "revenue_growth"})
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._values: Dict[str, float] = defaultdict(float)
        self._lock = Lock()

    def inc(self, value: float = 1.0, labels: Dict[str, str] = None) -> None:
        """Incrementa el contador."""
        if value < 0:
            raise ValueError("Counter solo puede incrementar")

        key = _labels_key(labels)
        with self._lock:
            self._values[key] += value

    def get(self, labels: Dict[str, str] = None) -> float:
        """Obtiene el valor actual."""
        return self._values.get(_labels_key(labels), 0.0)

    def get_all(self) -> Dict[str, float]:
        """Obtiene todos los valores."""
        return dict(self._values)

    def total(self) -> float:
        """Suma de todos los labels."""
        return sum(self._values.values())


class Gauge:
    """
    Medidor que puede subir y bajar.

    Uso:
        in_flight = Gauge("metrics_in_flight", "Cálculos en curso")
        in_flight.inc()
        in_flight.dec()
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._values: Dict[str, float] = defaultdict(float)
        self._lock = Lock()

    def set(self, value: float, labels: Dict[str, str] = None) -> None:
        """Establece el valor."""
        key = _labels_key(labels)
        with self._lock:
            self._values[key] = value

    def inc(self, value: float = 1.0, labels: Dict[str, str] = None) -> None:
        """Incrementa el valor."""
        key = _labels_key(labels)
        with self._lock:
            self._values[key] += value

    def dec(self, value: float = 1.0, labels: Dict[str, str] = None) -> None:
        """Decrementa el valor."""
        key = _labels_key(labels)
        with self._lock:
            self._values[key] -= value

    def get(self, labels: Dict[str, str] = None) -> float:
        """Obtiene el valor actual."""
        return self._values.get(_labels_key(labels), 0.0)

    def get_all(self) -> Dict[str, float]:
        """Obtiene todos los valores."""
        return dict(self._values)


class Histogram:
    """
    Histograma para distribuciones de valores.

    Uso:
        duration = Histogram("metrics_operation_duration_seconds", "Duración")
        duration.observe(0.5)
    """

    DEFAULT_BUCKETS = (0.1, 0.5, 1.0, 2.0, 5.0)

    def __init__(
        self,
        name: str,
        description: str = "",
        buckets: tuple = None
    ):
        self.name = name
        self.description = description
        self.buckets = buckets or self.DEFAULT_BUCKETS

        self._counts: Dict[str, Dict[float, int]] = defaultdict(lambda: defaultdict(int))
        self._sums: Dict[str, float] = defaultdict(float)
        self._total_counts: Dict[str, int] = defaultdict(int)
        self._lock = Lock()

    def observe(self, value: float, labels: Dict[str, str] = None) -> None:
        """Registra una observación."""
        key = _labels_key(labels)
        with self._lock:
            self._sums[key] += value
            self._total_counts[key] += 1

            for bucket in self.buckets:
                if value <= bucket:
                    self._counts[key][bucket] += 1

    def get_stats(self, labels: Dict[str, str] = None) -> Dict[str, Any]:
        """Obtiene estadísticas del histograma."""
        key = _labels_key(labels)
        total = self._total_counts.get(key, 0)
        total_sum = self._sums.get(key, 0.0)

        return {
            "count": total,
            "sum": total_sum,
            "avg": total_sum / total if total > 0 else 0.0,
            "buckets": {str(b): self._counts[key].get(b, 0) for b in self.buckets},
        }


# ============================================================================
# METRICS REGISTRY
# ============================================================================

class MetricsRegistry:
    """
    Registro central de métricas.

    Almacena y gestiona todas las métricas de la aplicación.
    """

    def __init__(self):
        self._metrics: Dict[str, Any] = {}
        self._lock = Lock()

    def counter(self, name: str, description: str = "") -> Counter:
        """Crea o obtiene un Counter."""
        with self._lock:
            if name not in self._metrics:
                self._metrics[name] = Counter(name, description)
            return cast(Counter, self._metrics[name])

    def gauge(self, name: str, description: str = "") -> Gauge:
        """Crea o obtiene un Gauge."""
        with self._lock:
            if name not in self._metrics:
                self._metrics[name] = Gauge(name, description)
            return cast(Gauge, self._metrics[name])

    def histogram(self, name: str, description: str = "", buckets: tuple = None) -> Histogram:
        """Crea o obtiene un Histogram."""
        with self._lock:
            if name not in self._metrics:
                self._metrics[name] = Histogram(name, description, buckets)
            return cast(Histogram, self._metrics[name])

    def get_all(self) -> Dict[str, Any]:
        """Obtiene todas las métricas."""
        result = {}
        for name, metric in self._metrics.items():
            if isinstance(metric, (Counter, Gauge)):
                result[name] = metric.get_all()
            elif isinstance(metric, Histogram):
                result[name] = metric.get_stats()
        return result

    def to_prometheus(self) -> str:
        """
        Exporta métricas en formato Prometheus.

        Returns:
            String en formato Prometheus exposition
        """
        lines = []

        for name, metric in self._metrics.items():
            if isinstance(metric, (Counter, Gauge)):
                kind = "counter" if isinstance(metric, Counter) else "gauge"
                lines.append(f"# HELP {name} {metric.description}")
                lines.append(f"# TYPE {name} {kind}")
                for labels_key, value in metric.get_all().items():
                    if labels_key:
                        lines.append(f"{name}{{{labels_key}}} {value}")
                    else:
                        lines.append(f"{name} {value}")

            elif isinstance(metric, Histogram):
                lines.append(f"# HELP {name} {metric.description}")
                lines.append(f"# TYPE {name} histogram")
                stats = metric.get_stats()
                lines.append(f"{name}_count {stats['count']}")
                lines.append(f"{name}_sum {stats['sum']}")

        return "\n".join(lines)


# ============================================================================
# GLOBAL REGISTRY AND METRICS
# ============================================================================

registry = MetricsRegistry()

cache_hits = registry.counter(
    "metrics_cache_hits_total",
    "Total de aciertos de cache"
)

cache_misses = registry.counter(
    "metrics_cache_misses_total",
    "Total de fallos de cache"
)

operation_duration = registry.histogram(
    "metrics_operation_duration_seconds",
    "Duración de operaciones de métricas"
)

backing_store_calls = registry.counter(
    "backing_store_calls_total",
    "Llamadas lógicas al backing store por resultado"
)

backing_store_retries = registry.counter(
    "backing_store_retries_total",
    "Reintentos contra el backing store"
)

circuit_state_gauge = registry.gauge(
    "backing_store_circuit_state",
    "Estado del circuit breaker (0=closed, 0.5=half_open, 1=open)"
)

in_flight_computations = registry.gauge(
    "metrics_in_flight_computations",
    "Cálculos de métricas en curso"
)


# ============================================================================
# CONTEXT MANAGER
# ============================================================================

class Timer:
    """
    Context manager para medir tiempo.

    Uso:
        with Timer(operation_duration, {"operation": "compute_metric"}):
            # código a medir
            ...
    """

    def __init__(
        self,
        histogram: Histogram = None,
        labels: Dict[str, str] = None
    ):
        self.histogram = histogram or operation_duration
        self.labels = labels
        self._start: Optional[float] = None

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.histogram.observe(self.elapsed, self.labels)
        return False

    @property
    def elapsed(self) -> float:
        """Tiempo transcurrido en segundos."""
        if self._start is None:
            return 0.0
        return time.perf_counter() - self._start


# ============================================================================
# EXPORT FUNCTIONS
# ============================================================================

def get_metrics() -> Dict[str, Any]:
    """Obtiene todas las métricas en formato JSON."""
    return registry.get_all()


def get_prometheus_metrics() -> str:
    """Obtiene métricas en formato Prometheus."""
    return registry.to_prometheus()
