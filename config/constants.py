"""
Constantes del sistema

Define valores que no cambian durante la ejecución.
"""

from enum import Enum


class MetricType(str, Enum):
    """Tipos de métrica soportados por el motor de fórmulas"""
    REVENUE_GROWTH = "revenue_growth"
    NDR = "net_dollar_retention"
    MAGIC_NUMBER = "magic_number"
    EBITDA_MARGIN = "ebitda_margin"
    ARR_PER_EMPLOYEE = "arr_per_employee"


class MetricCategory(str, Enum):
    """Categorías de métricas del benchmark"""
    GROWTH = "GROWTH"
    EFFICIENCY = "EFFICIENCY"
    PROFITABILITY = "PROFITABILITY"
    RETENTION = "RETENTION"


class MetricUnit(str, Enum):
    """Unidades de medida de una métrica"""
    PERCENTAGE = "PERCENTAGE"
    CURRENCY = "CURRENCY"
    RATIO = "RATIO"
    NUMBER = "NUMBER"


# ============================================================================
# CÁLCULOS
# ============================================================================

# Decimales del resultado de una fórmula
CALCULATION_PRECISION = 4

# Tamaño mínimo de la población de benchmark
MIN_DATA_POINTS = 5

# Percentiles reportados en cada resultado
PERCENTILE_POINTS = (5, 25, 50, 75, 90)

# Histograma
DEFAULT_BIN_COUNT = 10
IQR_OUTLIER_FACTOR = 1.5

# Niveles de confianza soportados -> z-score
Z_SCORES = {
    0.95: 1.96,
    0.99: 2.576,
}

# Tendencias
TREND_THRESHOLD = 0.01
TREND_CONFIDENCE_THRESHOLD = 0.95
MIN_HISTORICAL_DATA_POINTS = 3

# ============================================================================
# CACHE
# ============================================================================

CACHE_KEY_PREFIX = "metrics:"
CACHE_TTL_SECONDS = 900  # 15 minutos
