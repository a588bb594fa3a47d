"""
Percentile Statistics

Percentiles por interpolación lineal sobre una población de benchmark,
bandas de confianza y rango percentil de un valor.

Índice fraccional: i = p/100 * (n - 1), interpolando entre floor(i) y ceil(i).
"""

import math
from typing import Dict, Iterable, List, Sequence, Tuple

from config.constants import MIN_DATA_POINTS, PERCENTILE_POINTS, Z_SCORES
from src.metrics.formulas import round_value
from src.metrics.models import PercentileSet
from src.utils.errors import ValidationError
from src.utils.logger import get_logger

logger = get_logger(__name__)

_FIELDS = ("p5", "p25", "p50", "p75", "p90")


def _interpolate(sorted_values: Sequence[float], p: float) -> float:
    index = p / 100 * (len(sorted_values) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return sorted_values[lower]
    weight = index - lower
    return sorted_values[lower] + weight * (sorted_values[upper] - sorted_values[lower])


class PercentileStatistics:
    """
    Estadística de percentiles sobre poblaciones de benchmark.

    Uso:
        stats = PercentileStatistics()
        pset = stats.percentiles(value, population)
        bounds = stats.confidence_bounds(population, confidence=0.95)
    """

    def __init__(self, min_data_points: int = MIN_DATA_POINTS):
        self.min_data_points = min_data_points

    # ------------------------------------------------------------------
    # Validación
    # ------------------------------------------------------------------

    def _prepare(self, population: Iterable[float]) -> List[float]:
        """Copia ordenada y validada de la población."""
        values = list(population)

        if len(values) < self.min_data_points:
            raise ValidationError(
                f"Datos insuficientes: {len(values)} puntos "
                f"(mínimo {self.min_data_points})",
                field="benchmark_population",
                value=len(values),
            )

        invalid = [
            v for v in values
            if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v)
        ]
        if invalid:
            raise ValidationError(
                f"La población contiene {len(invalid)} valores no finitos",
                field="benchmark_population",
                value=invalid[:5],
            )

        return sorted(float(v) for v in values)

    @staticmethod
    def _check_point(p: float) -> None:
        if not 0 <= p <= 100:
            raise ValidationError(
                f"Percentil fuera de [0, 100]: {p}",
                field="percentile",
                value=p,
            )

    # ------------------------------------------------------------------
    # Operaciones
    # ------------------------------------------------------------------

    def percentile_value(self, population: Iterable[float], p: float) -> float:
        """Percentil arbitrario p en [0, 100]."""
        self._check_point(p)
        return round_value(_interpolate(self._prepare(population), p))

    def percentiles(
        self,
        value: float,
        population: Iterable[float],
        points: Sequence[float] = PERCENTILE_POINTS
    ) -> PercentileSet:
        """
        Calcula el conjunto p5..p90 de la población.

        Args:
            value: Valor de la métrica (debe ser finito)
            population: Población de benchmark
            points: Percentiles a calcular, en el orden p5, p25, p50, p75, p90

        Returns:
            PercentileSet

        Raises:
            ValidationError: Datos insuficientes o no finitos
        """
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValidationError(f"Valor de métrica no finito: {value}", field="value", value=value)

        if len(points) != len(_FIELDS):
            raise ValidationError(
                f"Se esperaban {len(_FIELDS)} puntos de percentil, recibidos {len(points)}",
                field="points",
                value=list(points),
            )
        for p in points:
            self._check_point(p)

        sorted_values = self._prepare(population)
        computed = {
            name: round_value(_interpolate(sorted_values, p))
            for name, p in zip(_FIELDS, points)
        }
        return PercentileSet(**computed)

    def confidence_bounds(
        self,
        population: Iterable[float],
        points: Sequence[float] = PERCENTILE_POINTS,
        confidence: float = 0.95
    ) -> Dict[str, Tuple[float, float]]:
        """
        Banda de confianza para cada percentil.

        Error estándar sobre la fracción: se = sqrt(f(1-f)/n). La fracción
        desplazada se recorta a [0, 1] y se vuelve a interpolar.

        Returns:
            {"p5": (lower, upper), ...}
        """
        z = Z_SCORES.get(confidence)
        if z is None:
            raise ValidationError(
                f"Nivel de confianza no soportado: {confidence}",
                field="confidence",
                value=confidence,
            )

        sorted_values = self._prepare(population)
        n = len(sorted_values)
        bounds: Dict[str, Tuple[float, float]] = {}

        for p in points:
            self._check_point(p)
            fraction = p / 100
            se = math.sqrt(fraction * (1 - fraction) / n)
            lower_f = min(max(fraction - z * se, 0.0), 1.0)
            upper_f = min(max(fraction + z * se, 0.0), 1.0)
            key = f"p{p:g}"
            bounds[key] = (
                round_value(_interpolate(sorted_values, lower_f * 100)),
                round_value(_interpolate(sorted_values, upper_f * 100)),
            )

        return bounds

    def percentile_rank(self, value: float, population: Iterable[float]) -> float:
        """
        Posición de un valor dentro de la población, en [0, 100].

        0 si está en o bajo el mínimo, 100 si está en o sobre el máximo.
        """
        sorted_values = self._prepare(population)
        n = len(sorted_values)

        if value <= sorted_values[0]:
            return 0.0
        if value >= sorted_values[-1]:
            return 100.0

        for i in range(n - 1):
            low, high = sorted_values[i], sorted_values[i + 1]
            if low <= value <= high:
                position = i if high == low else i + (value - low) / (high - low)
                return round_value(position / (n - 1) * 100)

        return 0.0

    @staticmethod
    def validate_ordering(pset: PercentileSet, strict: bool = True) -> None:
        """
        Verifica el orden de un PercentileSet.

        Con strict=True exige orden estrictamente ascendente, salvo que todos
        los valores sean iguales (población constante).

        Raises:
            ValidationError: Orden incorrecto
        """
        values = pset.as_tuple()
        constant = len(set(values)) == 1

        for name_a, a, name_b, b in zip(_FIELDS, values, _FIELDS[1:], values[1:]):
            if a > b or (strict and not constant and a == b):
                raise ValidationError(
                    f"Orden de percentiles inválido: {name_a}={a} {name_b}={b}",
                    field=name_b,
                    value=pset.to_dict(),
                )


__all__ = ["PercentileStatistics"]
