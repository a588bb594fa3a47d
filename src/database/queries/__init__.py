"""
Queries de Base de Datos

Módulo que exporta las consultas async del backing store de métricas.
"""

# Clase base para queries
from src.database.queries.base import BaseQuery

# Backing store de métricas
from src.database.queries.metrics_queries import (
    DataSourceQuery,
    MetricInputsQuery,
    get_latest_fields,
    get_benchmark_population,
)

__all__ = [
    "BaseQuery",
    "DataSourceQuery",
    "MetricInputsQuery",
    "get_latest_fields",
    "get_benchmark_population",
]
