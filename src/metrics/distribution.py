"""
Distribution Binner

Histograma de una población de benchmark con exclusión opcional de
outliers (criterio IQR) y normalización a porcentajes.
"""

import math
from typing import Iterable, List, Optional

from config.constants import DEFAULT_BIN_COUNT, IQR_OUTLIER_FACTOR, MIN_DATA_POINTS
from src.metrics.formulas import round_value
from src.metrics.models import DistributionSummary
from src.metrics.percentiles import PercentileStatistics
from src.utils.errors import ValidationError
from src.utils.logger import get_logger

logger = get_logger(__name__)


class DistributionBinner:
    """Agrupa una población en bins de ancho uniforme."""

    def __init__(
        self,
        statistics: Optional[PercentileStatistics] = None,
        outlier_factor: float = IQR_OUTLIER_FACTOR
    ):
        self.statistics = statistics if statistics is not None else PercentileStatistics()
        self.outlier_factor = outlier_factor

    def _exclude_outliers(self, values: List[float]) -> List[float]:
        q1 = self.statistics.percentile_value(values, 25)
        q3 = self.statistics.percentile_value(values, 75)
        iqr = q3 - q1
        low = q1 - self.outlier_factor * iqr
        high = q3 + self.outlier_factor * iqr
        return [v for v in values if low <= v <= high]

    def histogram(
        self,
        population: Iterable[float],
        bin_count: int = DEFAULT_BIN_COUNT,
        normalize: bool = False,
        exclude_outliers: bool = False
    ) -> DistributionSummary:
        """
        Genera el histograma.

        Args:
            population: Valores de benchmark
            bin_count: Número de bins (>= 1)
            normalize: Frecuencias como porcentaje del total filtrado
            exclude_outliers: Descartar valores fuera de [Q1 - 1.5 IQR, Q3 + 1.5 IQR]

        Returns:
            DistributionSummary con len(bins) == len(frequencies) + 1

        Raises:
            ValidationError: Población insuficiente o bin_count inválido
        """
        values = list(population)

        if len(values) < MIN_DATA_POINTS:
            raise ValidationError(
                f"Datos insuficientes para histograma: {len(values)} puntos "
                f"(mínimo {MIN_DATA_POINTS})",
                field="benchmark_population",
                value=len(values),
            )
        if isinstance(bin_count, bool) or not isinstance(bin_count, int) or bin_count < 1:
            raise ValidationError(
                f"bin_count debe ser un entero >= 1: {bin_count}",
                field="bin_count",
                value=bin_count,
            )
        if any(not isinstance(v, (int, float)) or not math.isfinite(v) for v in values):
            raise ValidationError(
                "La población contiene valores no finitos",
                field="benchmark_population",
            )

        values = [float(v) for v in values]
        filtered = self._exclude_outliers(values) if exclude_outliers else values
        outliers = len(values) - len(filtered)
        if outliers:
            logger.debug(f"Histograma: {outliers} outliers excluidos de {len(values)}")

        minimum = min(filtered)
        maximum = max(filtered)
        width = (maximum - minimum) / bin_count

        bins = [round_value(minimum + i * width) for i in range(bin_count + 1)]
        counts = [0] * bin_count
        for v in filtered:
            index = 0 if width == 0 else int((v - minimum) // width)
            counts[min(max(index, 0), bin_count - 1)] += 1

        total = len(filtered)
        if normalize:
            frequencies = [c / total * 100 for c in counts]
        else:
            frequencies = [float(c) for c in counts]

        mean = sum(filtered) / total
        variance = sum((v - mean) ** 2 for v in filtered) / total

        return DistributionSummary(
            bins=bins,
            frequencies=frequencies,
            mean=round_value(mean),
            standard_deviation=round_value(math.sqrt(variance)),
            outliers=outliers,
            total=total,
            bin_width=round_value(width),
            normalized=normalize,
        )


__all__ = ["DistributionBinner"]
