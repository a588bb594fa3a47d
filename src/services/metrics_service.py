"""
Metrics Service

Orquesta la lectura de métricas con patrón cache-aside:

    get_metric(id)
      -> CacheStore (hit -> retorna)
      -> miss -> single-flight por clave
      -> ResilientFetcher.call(backing_store.fetch_raw_inputs)
      -> FormulaEngine / PercentileStatistics / DistributionBinner
      -> CacheStore.set -> todos los que esperan reciben el mismo resultado

Un caller cancelado nunca cancela el cálculo compartido (asyncio.shield).

Uso:
    service = MetricsService(backing_store, cache, fetcher)
    result = await service.get_metric("revenue_growth")
    await service.invalidate_metric("source-123")
"""

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Set

from config.constants import (
    CACHE_KEY_PREFIX,
    DEFAULT_BIN_COUNT,
    PERCENTILE_POINTS,
)
from src.metrics.definitions import MetricDefinition, MetricDefinitionRegistry
from src.metrics.distribution import DistributionBinner
from src.metrics.formulas import FormulaEngine
from src.metrics.models import MetricResult, RawInputs
from src.metrics.percentiles import PercentileStatistics
from src.metrics.trends import TrendResult, calculate_trend
from src.services.cache_store import CacheStore
from src.services.resilience import CircuitState, ResilientFetcher, is_transient_error
from src.utils.errors import (
    CircuitOpenError,
    MetricsError,
    NotFoundError,
    ServiceUnavailableError,
    error_registry,
)
from src.utils.logger import LogContext, get_logger, log_exception, log_performance, with_context
from src.utils.metrics import (
    Timer,
    cache_hits,
    cache_misses,
    in_flight_computations,
    operation_duration,
)

logger = get_logger(__name__)


class BackingStore(Protocol):
    """Interfaz mínima de lectura contra la base de datos."""

    async def fetch_raw_inputs(self, metric_id: str) -> RawInputs:
        """
        Retorna los campos de entrada y la población de benchmark.

        Raises:
            NotFoundError: Si no hay datos para la métrica
        """
        ...


def cache_key(metric_id: str) -> str:
    """Clave de cache de una métrica: metrics:{metric_id}."""
    return f"{CACHE_KEY_PREFIX}{metric_id}"


class MetricsService:
    """
    Servicio de lectura de métricas.

    El cache, el fetcher (con su breaker) y el registro de definiciones se
    construyen una vez en AppContext y se pasan por referencia.
    """

    def __init__(
        self,
        backing_store: BackingStore,
        cache: Optional[CacheStore] = None,
        fetcher: Optional[ResilientFetcher] = None,
        registry: Optional[MetricDefinitionRegistry] = None,
        engine: Optional[FormulaEngine] = None,
        statistics: Optional[PercentileStatistics] = None,
        binner: Optional[DistributionBinner] = None,
        bin_count: int = DEFAULT_BIN_COUNT,
        confidence_level: float = 0.95,
        normalize_distribution: bool = True,
        exclude_outliers: bool = False,
        ttl_seconds: Optional[int] = None,
    ):
        self.backing_store = backing_store
        self.cache = cache if cache is not None else CacheStore()
        self.fetcher = fetcher if fetcher is not None else ResilientFetcher()
        self.registry = registry if registry is not None else MetricDefinitionRegistry.with_defaults()
        self.engine = engine if engine is not None else FormulaEngine(self.registry)
        self.statistics = statistics if statistics is not None else PercentileStatistics()
        self.binner = binner if binner is not None else DistributionBinner(self.statistics)
        self.bin_count = bin_count
        self.confidence_level = confidence_level
        self.normalize_distribution = normalize_distribution
        self.exclude_outliers = exclude_outliers
        self.ttl_seconds = ttl_seconds

        self._in_flight: Dict[str, "asyncio.Task[MetricResult]"] = {}
        # source_id -> metric_ids derivados de esa fuente
        self._source_index: Dict[str, Set[str]] = {}
        # Se incrementa en cada invalidación; un cálculo iniciado antes no se cachea
        self._generation = 0

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------

    async def get_metric(self, metric_id: str) -> MetricResult:
        """
        Obtiene una métrica con sus estadísticas.

        Raises:
            NotFoundError: Métrica desconocida o sin datos
            ServiceUnavailableError: Backing store caído o breaker abierto
            ValidationError: Datos inválidos o valor fuera de rango
            CalculationError: Aritmética inválida
        """
        try:
            definition = self.registry.get(metric_id)
        except NotFoundError as e:
            error_registry.record(e)
            raise

        key = cache_key(metric_id)
        cached = self.cache.get(key)
        if cached is not None:
            cache_hits.inc(labels={"metric_id": metric_id})
            return MetricResult.from_dict(cached)

        cache_misses.inc(labels={"metric_id": metric_id})

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._compute_and_store(definition, key))
            task.add_done_callback(_consume_exception)
            self._in_flight[key] = task
        else:
            logger.debug(f"Esperando cálculo en curso de {metric_id}")

        return await asyncio.shield(task)

    async def get_metrics(
        self,
        metric_ids: Iterable[str],
        raise_on_error: bool = True
    ) -> Dict[str, MetricResult]:
        """
        Lee varias métricas en paralelo.

        Con raise_on_error=False las métricas que fallan se omiten del
        resultado y se registran en el log.
        """
        ids = list(dict.fromkeys(metric_ids))
        outcomes = await asyncio.gather(
            *(self.get_metric(metric_id) for metric_id in ids),
            return_exceptions=not raise_on_error,
        )

        results: Dict[str, MetricResult] = {}
        for metric_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                log_exception(logger, f"No se pudo obtener {metric_id}", outcome)
                continue
            results[metric_id] = outcome
        return results

    async def get_metric_trend(
        self,
        metric_id: str,
        previous_value: float,
        history: Optional[Sequence[float]] = None
    ) -> TrendResult:
        """Tendencia del valor actual frente al periodo anterior."""
        result = await self.get_metric(metric_id)
        return calculate_trend(result.value, previous_value, history)

    # ------------------------------------------------------------------
    # Cálculo
    # ------------------------------------------------------------------

    async def _compute_and_store(self, definition: MetricDefinition, key: str) -> MetricResult:
        generation = self._generation
        in_flight_computations.inc()
        try:
            with LogContext(metric_id=definition.id, action="compute_metric"):
                with Timer(operation_duration, {"operation": "compute_metric"}) as timer:
                    raw = await self._fetch(definition.id)
                    result = self.build_result(definition, raw)

                if generation == self._generation:
                    self.cache.set(key, result.to_dict(), self.ttl_seconds)
                    self._index_sources(definition.id, raw.source_ids)
                else:
                    logger.info(f"{definition.id} invalidada durante el cálculo; no se cachea")

                logger.info(f"Métrica {definition.id} calculada: {result.value} (n={result.sample_size})")
                log_performance(logger, f"compute_metric:{definition.id}", timer.elapsed * 1000)
                return result

        except MetricsError as e:
            error_registry.record(e)
            raise

        finally:
            in_flight_computations.dec()
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    async def _fetch(self, metric_id: str) -> RawInputs:
        try:
            raw = await self.fetcher.call(
                lambda: self.backing_store.fetch_raw_inputs(metric_id),
                operation=f"fetch_raw_inputs:{metric_id}",
            )
        except CircuitOpenError as e:
            raise ServiceUnavailableError(
                f"Backing store no disponible (circuito abierto) para {metric_id}",
                metric_id=metric_id,
                circuit_state=self.fetcher.breaker.state.value,
                original_error=e,
            ) from e
        except Exception as e:
            if not is_transient_error(e):
                raise
            raise ServiceUnavailableError(
                f"Backing store no disponible para {metric_id}: {type(e).__name__}",
                metric_id=metric_id,
                circuit_state=self.fetcher.breaker.state.value,
                original_error=e,
            ) from e

        if raw is None or (not raw.fields and not raw.benchmark_population):
            raise NotFoundError(f"Sin datos para la métrica {metric_id}", metric_id=metric_id)
        return raw

    def build_result(self, definition: MetricDefinition, raw: RawInputs) -> MetricResult:
        """Combina valor, percentiles y distribución en un MetricResult."""
        value_obj = self.engine.compute_value(definition, raw.fields)
        population = raw.benchmark_population

        percentiles = self.statistics.percentiles(value_obj.value, population, PERCENTILE_POINTS)
        self.statistics.validate_ordering(percentiles, strict=False)

        return MetricResult(
            metric_id=definition.id,
            value=value_obj.value,
            unit=definition.unit.value,
            percentiles=percentiles,
            distribution=self.binner.histogram(
                population,
                bin_count=self.bin_count,
                normalize=self.normalize_distribution,
                exclude_outliers=self.exclude_outliers,
            ),
            computed_at=value_obj.computed_at,
            name=definition.name,
            category=definition.category.value,
            percentile_rank=self.statistics.percentile_rank(value_obj.value, population),
            sample_size=len(population),
            confidence_bounds=self.statistics.confidence_bounds(
                population, PERCENTILE_POINTS, self.confidence_level
            ),
            source_ids=list(raw.source_ids),
            display_value=self.engine.display_value(definition, value_obj.value),
        )

    # ------------------------------------------------------------------
    # Invalidación
    # ------------------------------------------------------------------

    def _index_sources(self, metric_id: str, source_ids: Iterable[str]) -> None:
        for source_id in source_ids:
            self._source_index.setdefault(source_id, set()).add(metric_id)

    def _detach_in_flight(self, keys: Optional[Iterable[str]] = None) -> None:
        """
        Saca de _in_flight los cálculos afectados por una invalidación.

        Los que ya esperan reciben su resultado; los callers nuevos lanzan
        un fetch propio.
        """
        for key in list(self._in_flight) if keys is None else list(keys):
            self._in_flight.pop(key, None)

    async def invalidate_metric(self, source_id: str) -> int:
        """
        Invalida las métricas derivadas de una fuente de datos.

        Si la fuente no aparece en ninguna métrica cacheada se invalida
        todo `metrics:*`.

        Returns:
            Número de entradas eliminadas
        """
        self._generation += 1
        with LogContext(source_id=source_id, action="invalidate_metric"):
            metric_ids = self._source_index.pop(source_id, None)
            if not metric_ids:
                removed = self.cache.invalidate(f"{CACHE_KEY_PREFIX}*")
                self._source_index.clear()
                self._detach_in_flight()
                logger.info(f"Fuente {source_id} sin índice; invalidado {CACHE_KEY_PREFIX}*")
                return removed

            removed = 0
            for metric_id in sorted(metric_ids):
                removed += self.cache.invalidate(cache_key(metric_id))
            self._detach_in_flight(cache_key(m) for m in metric_ids)
            logger.info(f"Fuente {source_id}: {removed} métricas invalidadas")
            return removed

    @with_context(action="invalidate_all")
    async def invalidate_all(self) -> int:
        """Invalida todas las métricas cacheadas."""
        self._generation += 1
        self._source_index.clear()
        removed = self.cache.invalidate(f"{CACHE_KEY_PREFIX}*")
        self._detach_in_flight()
        logger.info(f"{removed} métricas invalidadas")
        return removed

    # ------------------------------------------------------------------
    # Introspección
    # ------------------------------------------------------------------

    def list_definitions(self) -> List[MetricDefinition]:
        return list(self.registry.all().values())

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def health_check(self) -> Dict[str, Any]:
        """Estado del servicio: cache, breaker y cálculos en curso."""
        circuit = self.fetcher.breaker.status()
        state = self.fetcher.breaker.state
        if state == CircuitState.OPEN:
            status = "unhealthy"
        elif state == CircuitState.HALF_OPEN:
            status = "degraded"
        else:
            status = "healthy"

        return {
            "status": status,
            "cache": self.cache.stats(),
            "circuit": circuit,
            "in_flight": self.in_flight_count,
            "definitions": len(self.registry),
        }


def _consume_exception(task: "asyncio.Task[Any]") -> None:
    # Evita "exception was never retrieved" si todos los callers se cancelaron
    if not task.cancelled():
        task.exception()


__all__ = ["BackingStore", "MetricsService", "cache_key"]
