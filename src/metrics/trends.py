"""
Trend Analysis

Dirección y significancia estadística del cambio de una métrica
respecto a su periodo anterior y a su histórico.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from config.constants import (
    MIN_HISTORICAL_DATA_POINTS,
    TREND_CONFIDENCE_THRESHOLD,
    TREND_THRESHOLD,
)
from src.metrics.formulas import round_value
from src.utils.errors import CalculationError, ValidationError


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


@dataclass(frozen=True)
class TrendResult:
    direction: TrendDirection
    percentage: float
    significance: bool
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "percentage": self.percentage,
            "significance": self.significance,
            "confidence": self.confidence,
        }


def normal_cdf(x: float) -> float:
    """CDF de la normal estándar: 0.5 * (1 + erf(x / sqrt(2)))."""
    return 0.5 * (1 + math.erf(x / math.sqrt(2)))


def _finite(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(f"Valor no finito en '{name}': {value}", field=name, value=value)
    return float(value)


def calculate_trend(
    current: float,
    previous: float,
    history: Optional[Sequence[float]] = None
) -> TrendResult:
    """
    Calcula la tendencia de una métrica.

    Args:
        current: Valor actual
        previous: Valor del periodo anterior (distinto de cero)
        history: Valores históricos; se necesitan al menos 3 para medir confianza

    Returns:
        TrendResult

    Raises:
        CalculationError: Si previous es cero
        ValidationError: Si algún valor no es finito
    """
    current = _finite("current", current)
    previous = _finite("previous", previous)

    if previous == 0:
        raise CalculationError(
            "No se puede calcular la tendencia con valor anterior cero",
            field="previous",
            value=previous,
        )

    change = round_value((current - previous) / abs(previous) * 100)

    if abs(change) <= TREND_THRESHOLD:
        direction = TrendDirection.FLAT
    elif change > 0:
        direction = TrendDirection.UP
    else:
        direction = TrendDirection.DOWN

    confidence = 0.0
    points = [_finite("history", v) for v in (history or ())]
    if len(points) >= MIN_HISTORICAL_DATA_POINTS:
        mean = sum(points) / len(points)
        sigma = math.sqrt(sum((v - mean) ** 2 for v in points) / len(points))
        if sigma == 0:
            confidence = 1.0 if current != mean else 0.0
        else:
            z = abs(current - mean) / sigma
            confidence = 2 * normal_cdf(z) - 1

    confidence = round_value(confidence)
    return TrendResult(
        direction=direction,
        percentage=change,
        significance=confidence >= TREND_CONFIDENCE_THRESHOLD,
        confidence=confidence,
    )


__all__ = ["TrendDirection", "TrendResult", "calculate_trend", "normal_cdf"]
