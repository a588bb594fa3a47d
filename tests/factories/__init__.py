"""
Factories para Tests

Proporciona factories para crear objetos de prueba de forma limpia y reutilizable.
Sigue el patrón Factory de factory-boy para testing.

Uso:
    from tests.factories import DataSourceFactory, RawInputsFactory

    # Persistir una fuente en una sesión async
    source = await DataSourceFactory.create_async(session)

    # Datos crudos en memoria
    raw = RawInputsFactory(benchmark_population=[1, 2, 3, 4, 5])
"""

from tests.factories.metrics import (
    DataSourceFactory,
    MetricInputFactory,
    BenchmarkDataPointFactory,
    RevenueGrowthFieldsFactory,
    NdrFieldsFactory,
    RawInputsFactory,
)
from tests.factories.stores import BENCHMARK_POPULATION, FakeBackingStore, FrozenClock

__all__ = [
    # ORM factories
    "DataSourceFactory",
    "MetricInputFactory",
    "BenchmarkDataPointFactory",

    # Domain factories
    "RevenueGrowthFieldsFactory",
    "NdrFieldsFactory",
    "RawInputsFactory",

    # Fakes
    "BENCHMARK_POPULATION",
    "FakeBackingStore",
    "FrozenClock",
]
