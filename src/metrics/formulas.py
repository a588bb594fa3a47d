"""
Formula Engine

Cálculo puro de métricas SaaS a partir de campos de entrada.

Fórmulas:
  Revenue growth   = (currentARR - previousARR) / previousARR x 100
  NDR              = (beginningARR + expansion - contraction - churn) / beginningARR x 100
  Magic number     = netNewARR / salesMarketingSpend
  EBITDA margin    = ebitda / revenue x 100
  ARR per employee = totalARR / employeeCount

Sin I/O ni estado compartido: seguro para llamadas concurrentes.
"""

import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Any, Callable, Dict, Mapping, Optional, Union

from config.constants import CALCULATION_PRECISION, MetricType
from src.metrics.definitions import MetricDefinition, MetricDefinitionRegistry
from src.metrics.models import MetricValue
from src.utils.errors import CalculationError, NotFoundError, ValidationError
from src.utils.logger import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Helpers numéricos
# ---------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _divide(numerator: float, denominator: float, field: str) -> float:
    """Divide o lanza CalculationError si el denominador es cero o no finito."""
    if not math.isfinite(denominator) or denominator == 0:
        raise CalculationError(
            f"Denominador inválido en '{field}': {denominator}",
            field=field,
            value=denominator,
        )
    return numerator / denominator


def round_value(value: float, precision: int = CALCULATION_PRECISION) -> float:
    """Redondeo half-up reproducible."""
    quantum = Decimal(1).scaleb(-precision)
    with localcontext() as ctx:
        # Cubre el rango completo de float (hasta ~1e308) más los decimales
        ctx.prec = 330 + max(precision, 0)
        return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _require(condition: bool, field: str, value: float, message: str) -> None:
    """Lanza ValidationError sobre `field` si no se cumple la condición de dominio."""
    if not condition:
        raise ValidationError(message, field=field, value=value)


# ---------------------------------------------------------------------------
# Fórmulas
# ---------------------------------------------------------------------------

def _revenue_growth(f: Mapping[str, float]) -> float:
    for name in ("currentARR", "previousARR"):
        _require(f[name] >= 0, name, f[name], f"{name} no puede ser negativo")
    return _divide(f["currentARR"] - f["previousARR"], f["previousARR"], "previousARR") * 100


def _net_dollar_retention(f: Mapping[str, float]) -> float:
    _require(f["beginningARR"] > 0, "beginningARR", f["beginningARR"], "beginningARR debe ser positivo")
    for name in ("expansion", "contraction", "churn"):
        _require(f[name] >= 0, name, f[name], f"{name} no puede ser negativo")
    lost = f["contraction"] + f["churn"]
    _require(
        lost <= f["beginningARR"], "churn", lost,
        "contraction + churn no puede superar beginningARR",
    )
    retained = f["beginningARR"] + f["expansion"] - lost
    return _divide(retained, f["beginningARR"], "beginningARR") * 100


def _magic_number(f: Mapping[str, float]) -> float:
    spend = f["salesMarketingSpend"]
    _require(spend > 0, "salesMarketingSpend", spend, "salesMarketingSpend debe ser positivo")
    return _divide(f["netNewARR"], spend, "salesMarketingSpend")


def _ebitda_margin(f: Mapping[str, float]) -> float:
    _require(f["revenue"] > 0, "revenue", f["revenue"], "revenue debe ser positivo")
    return _divide(f["ebitda"], f["revenue"], "revenue") * 100


def _arr_per_employee(f: Mapping[str, float]) -> float:
    _require(f["totalARR"] >= 0, "totalARR", f["totalARR"], "totalARR no puede ser negativo")
    employees = f["employeeCount"]
    _require(
        employees > 0 and employees.is_integer(), "employeeCount", employees,
        "employeeCount debe ser un entero positivo",
    )
    return _divide(f["totalARR"], employees, "employeeCount")


FORMULAS: Dict[MetricType, Callable[[Mapping[str, float]], float]] = {
    MetricType.REVENUE_GROWTH: _revenue_growth,
    MetricType.NDR: _net_dollar_retention,
    MetricType.MAGIC_NUMBER: _magic_number,
    MetricType.EBITDA_MARGIN: _ebitda_margin,
    MetricType.ARR_PER_EMPLOYEE: _arr_per_employee,
}


class FormulaEngine:
    """
    Motor de fórmulas.

    Valida campos requeridos, aplica la fórmula del tipo de métrica,
    redondea a 4 decimales y verifica el rango válido (sin clamp).
    """

    def __init__(self, registry: Optional[MetricDefinitionRegistry] = None):
        self.registry = registry if registry is not None else MetricDefinitionRegistry.with_defaults()

    def resolve(self, metric_type: Union[MetricType, MetricDefinition, str]) -> MetricDefinition:
        """Obtiene la definición para un tipo, id o definición."""
        if isinstance(metric_type, MetricDefinition):
            return metric_type
        try:
            return self.registry.find_by_type(MetricType(metric_type))
        except (ValueError, NotFoundError):
            pass
        if isinstance(metric_type, str) and metric_type in self.registry:
            return self.registry.get(metric_type)
        raise CalculationError(
            f"Tipo de métrica no soportado: {metric_type}",
            metric_id=str(metric_type),
        )

    def compute(
        self,
        metric_type: Union[MetricType, MetricDefinition, str],
        inputs: Mapping[str, Any]
    ) -> float:
        """
        Calcula el valor de una métrica.

        Args:
            metric_type: Tipo de métrica (enum, id o definición)
            inputs: Campos de entrada por nombre

        Returns:
            Valor redondeado a 4 decimales

        Raises:
            ValidationError: Campos faltantes/inválidos o valor fuera de rango
            CalculationError: Tipo no soportado o aritmética no finita
        """
        definition = self.resolve(metric_type)
        formula = FORMULAS.get(definition.metric_type)
        if formula is None:
            raise CalculationError(
                f"Tipo de métrica no soportado: {definition.metric_type}",
                metric_id=definition.id,
            )

        fields = self._validate_inputs(definition, inputs)

        try:
            raw = formula(fields)
        except (CalculationError, ValidationError) as e:
            e.context.metric_id = definition.id
            raise

        if not math.isfinite(raw):
            raise CalculationError(
                f"Resultado no finito para {definition.id}: {raw}",
                metric_id=definition.id,
                value=raw,
            )

        value = round_value(raw)

        if not definition.in_range(value):
            low, high = definition.valid_range
            raise ValidationError(
                f"Valor {value} fuera del rango válido [{low}, {high}] para {definition.id}",
                field=definition.id,
                value=value,
                metric_id=definition.id,
            )

        return value

    def compute_value(
        self,
        definition: MetricDefinition,
        inputs: Mapping[str, Any],
        computed_at: Optional[datetime] = None
    ) -> MetricValue:
        """Igual que compute pero retorna un MetricValue con timestamp."""
        return MetricValue(
            metric_id=definition.id,
            value=self.compute(definition, inputs),
            computed_at=computed_at or datetime.utcnow(),
        )

    @staticmethod
    def display_value(definition: MetricDefinition, value: float) -> float:
        """Valor redondeado a la precisión de presentación de la definición."""
        return round_value(value, definition.precision)

    @staticmethod
    def _validate_inputs(
        definition: MetricDefinition,
        inputs: Mapping[str, Any]
    ) -> Dict[str, float]:
        missing = sorted(f for f in definition.required_fields if f not in inputs)
        invalid = sorted(
            f for f in definition.required_fields
            if f in inputs and not _is_number(inputs[f])
        )

        if missing or invalid:
            parts = []
            if missing:
                parts.append(f"faltantes: {', '.join(missing)}")
            if invalid:
                parts.append(f"inválidos: {', '.join(invalid)}")
            raise ValidationError(
                f"Campos de entrada {'; '.join(parts)} para {definition.id}",
                fields=missing + invalid,
                value={f: inputs[f] for f in invalid} or None,
                metric_id=definition.id,
            )

        return {f: float(inputs[f]) for f in definition.required_fields}
