"""
Metrics Module

Núcleo de cálculo de métricas SaaS de benchmark.

Componentes:
- Definitions: Catálogo inmutable de métricas
- FormulaEngine: Cálculo puro del valor de una métrica
- PercentileStatistics: Percentiles, bandas de confianza y rango percentil
- DistributionBinner: Histograma con exclusión de outliers
- Trends: Dirección y significancia de cambios

Uso:
    from src.metrics import FormulaEngine, PercentileStatistics

    engine = FormulaEngine()
    value = engine.compute("revenue_growth", {"currentARR": 1.2e6, "previousARR": 1e6})
"""

from src.metrics.models import (
    MetricValue,
    PercentileSet,
    DistributionSummary,
    RawInputs,
    MetricResult,
)

from src.metrics.definitions import (
    MetricDefinition,
    MetricDefinitionRegistry,
    DEFAULT_DEFINITIONS,
)

from src.metrics.formulas import (
    FormulaEngine,
    FORMULAS,
    round_value,
)

from src.metrics.percentiles import PercentileStatistics
from src.metrics.distribution import DistributionBinner

from src.metrics.trends import (
    TrendDirection,
    TrendResult,
    calculate_trend,
    normal_cdf,
)

__all__ = [
    # Models
    "MetricValue",
    "PercentileSet",
    "DistributionSummary",
    "RawInputs",
    "MetricResult",
    # Definitions
    "MetricDefinition",
    "MetricDefinitionRegistry",
    "DEFAULT_DEFINITIONS",
    # Formulas
    "FormulaEngine",
    "FORMULAS",
    "round_value",
    # Statistics
    "PercentileStatistics",
    "DistributionBinner",
    # Trends
    "TrendDirection",
    "TrendResult",
    "calculate_trend",
    "normal_cdf",
]
