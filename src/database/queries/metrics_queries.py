"""
Metrics Queries

Backing store SQLAlchemy del núcleo de métricas. Implementa
`fetch_raw_inputs(metric_id)`:

- Último valor de cada campo de entrada de la métrica
- Población de benchmark de la métrica
- Fuentes de datos que aportaron ambos

Solo se leen fuentes activas y no eliminadas. Los errores de conexión de
SQLAlchemy se propagan tal cual; ResilientFetcher los trata como transitorios.
"""

from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.connection import get_async_db
from src.database.models import BenchmarkDataPoint, DataSource, MetricInput
from src.database.queries.base import BaseQuery
from src.metrics.models import RawInputs
from src.utils.errors import NotFoundError
from src.utils.logger import get_logger

logger = get_logger(__name__)


class DataSourceQuery(BaseQuery[DataSource]):
    """Queries de fuentes de datos."""
    model = DataSource

    async def get_active(self, db: AsyncSession) -> List[DataSource]:
        result = await db.execute(
            select(DataSource)
            .where(*_active_source())
            .order_by(DataSource.name)
        )
        return list(result.scalars().all())


def _active_source():
    return (DataSource.active == True, DataSource.not_deleted())  # noqa: E712


async def get_latest_fields(
    db: AsyncSession,
    metric_id: str
) -> Tuple[Dict[str, float], Set[str]]:
    """
    Último valor de cada campo de entrada de una métrica.

    Returns:
        Tupla (campos, source_ids que los aportaron)
    """
    result = await db.execute(
        select(MetricInput.field_name, MetricInput.value, MetricInput.source_id)
        .join(DataSource, DataSource.id == MetricInput.source_id)
        .where(MetricInput.metric_id == metric_id, *_active_source())
        .order_by(
            MetricInput.field_name,
            MetricInput.period.desc(),
            MetricInput.id.desc(),
        )
    )

    fields: Dict[str, float] = {}
    sources: Set[str] = set()
    for field_name, value, source_id in result.all():
        if field_name in fields:
            continue
        fields[field_name] = value
        sources.add(source_id)
    return fields, sources


async def get_benchmark_population(
    db: AsyncSession,
    metric_id: str,
    arr_range: Optional[str] = None
) -> Tuple[List[float], Set[str]]:
    """
    Población de benchmark de una métrica.

    Args:
        arr_range: Segmento de ARR opcional (ej: "1M-5M")

    Returns:
        Tupla (valores, source_ids)
    """
    query = (
        select(BenchmarkDataPoint.value, BenchmarkDataPoint.source_id)
        .join(DataSource, DataSource.id == BenchmarkDataPoint.source_id)
        .where(BenchmarkDataPoint.metric_id == metric_id, *_active_source())
        .order_by(BenchmarkDataPoint.id)
    )
    if arr_range:
        query = query.where(BenchmarkDataPoint.arr_range == arr_range)

    result = await db.execute(query)
    rows = result.all()
    return [value for value, _ in rows], {source_id for _, source_id in rows}


class MetricInputsQuery:
    """
    Backing store sobre SQLAlchemy.

    Uso:
        store = MetricInputsQuery()                     # usa get_async_db
        store = MetricInputsQuery(session_factory)      # async_sessionmaker en tests
        raw = await store.fetch_raw_inputs("revenue_growth")
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Any]] = None,
        arr_range: Optional[str] = None
    ):
        self._session_factory = session_factory or get_async_db
        self.arr_range = arr_range

    async def fetch_raw_inputs(self, metric_id: str) -> RawInputs:
        """
        Lee los datos crudos de una métrica.

        Raises:
            NotFoundError: Si no hay campos ni población para la métrica
        """
        async with self._session_factory() as db:
            fields, field_sources = await get_latest_fields(db, metric_id)
            population, population_sources = await get_benchmark_population(
                db, metric_id, self.arr_range
            )

        if not fields and not population:
            raise NotFoundError(f"Sin datos para la métrica {metric_id}", metric_id=metric_id)

        logger.debug(
            f"Datos de {metric_id}: {len(fields)} campos, {len(population)} puntos de benchmark"
        )
        return RawInputs(
            fields=fields,
            benchmark_population=population,
            source_ids=sorted(field_sources | population_sources),
        )
