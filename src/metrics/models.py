"""
Metric Models

Estructuras de datos del núcleo de métricas: valor calculado,
percentiles, distribución y el resultado combinado que recibe el caller.
Todas se serializan a diccionarios planos para el cache.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).rstrip("Z"))


@dataclass(frozen=True)
class MetricValue:
    """Resultado de una métrica en un instante."""

    metric_id: str
    value: float
    computed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric_id": self.metric_id,
            "value": self.value,
            "computed_at": self.computed_at.isoformat(),
        }


@dataclass(frozen=True)
class PercentileSet:
    """Percentiles p5..p90 de una población de benchmark."""

    p5: float
    p25: float
    p50: float
    p75: float
    p90: float

    def as_tuple(self) -> Tuple[float, float, float, float, float]:
        return (self.p5, self.p25, self.p50, self.p75, self.p90)

    def to_dict(self) -> Dict[str, float]:
        return {
            "p5": self.p5,
            "p25": self.p25,
            "p50": self.p50,
            "p75": self.p75,
            "p90": self.p90,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PercentileSet":
        return cls(
            p5=float(data["p5"]),
            p25=float(data["p25"]),
            p50=float(data["p50"]),
            p75=float(data["p75"]),
            p90=float(data["p90"]),
        )


@dataclass(frozen=True)
class DistributionSummary:
    """
    Histograma de una población.

    `bins` tiene un borde más que `frequencies`.
    """

    bins: List[float]
    frequencies: List[float]
    mean: float
    standard_deviation: float
    outliers: int = 0
    total: int = 0
    bin_width: float = 0.0
    normalized: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bins": list(self.bins),
            "frequencies": list(self.frequencies),
            "mean": self.mean,
            "standard_deviation": self.standard_deviation,
            "outliers": self.outliers,
            "total": self.total,
            "bin_width": self.bin_width,
            "normalized": self.normalized,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DistributionSummary":
        return cls(
            bins=[float(b) for b in data["bins"]],
            frequencies=[float(f) for f in data["frequencies"]],
            mean=float(data["mean"]),
            standard_deviation=float(data["standard_deviation"]),
            outliers=int(data.get("outliers", 0)),
            total=int(data.get("total", 0)),
            bin_width=float(data.get("bin_width", 0.0)),
            normalized=bool(data.get("normalized", False)),
        )


@dataclass(frozen=True)
class RawInputs:
    """Lo único que el núcleo necesita del backing store."""

    fields: Dict[str, float]
    benchmark_population: List[float]
    source_ids: List[str] = field(default_factory=list)
    display_value: Optional[float] = None


@dataclass(frozen=True)
class MetricResult:
    """
    Resultado combinado de get_metric.

    Es lo que se guarda en cache (serializado) y lo que recibe el caller.
    """

    metric_id: str
    value: float
    unit: str
    percentiles: PercentileSet
    distribution: DistributionSummary
    computed_at: datetime
    name: str = ""
    category: str = ""
    percentile_rank: Optional[float] = None
    sample_size: int = 0
    confidence_bounds: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    source_ids: List[str] = field(default_factory=list)
    display_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric_id": self.metric_id,
            "name": self.name,
            "category": self.category,
            "value": self.value,
            "unit": self.unit,
            "percentiles": self.percentiles.to_dict(),
            "distribution": self.distribution.to_dict(),
            "computed_at": self.computed_at.isoformat(),
            "percentile_rank": self.percentile_rank,
            "sample_size": self.sample_size,
            "confidence_bounds": {
                k: [lower, upper] for k, (lower, upper) in self.confidence_bounds.items()
            },
            "source_ids": list(self.source_ids),
            "display_value": self.display_value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricResult":
        return cls(
            metric_id=data["metric_id"],
            value=float(data["value"]),
            unit=data["unit"],
            percentiles=PercentileSet.from_dict(data["percentiles"]),
            distribution=DistributionSummary.from_dict(data["distribution"]),
            computed_at=_parse_timestamp(data["computed_at"]),
            name=data.get("name", ""),
            category=data.get("category", ""),
            percentile_rank=data.get("percentile_rank"),
            sample_size=int(data.get("sample_size", 0)),
            confidence_bounds={
                k: (float(v[0]), float(v[1]))
                for k, v in (data.get("confidence_bounds") or {}).items()
            },
            source_ids=list(data.get("source_ids") or []),
            display_value=data.get("display_value"),
        )
