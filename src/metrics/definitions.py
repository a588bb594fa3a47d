"""
Metric Definitions

Catálogo de definiciones de métricas. Se carga una vez al arrancar
y no se modifica después (`freeze`).
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from config.constants import MetricCategory, MetricType, MetricUnit
from src.utils.errors import NotFoundError
from src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MetricDefinition:
    """Definición inmutable de una métrica."""

    id: str
    name: str
    category: MetricCategory
    unit: MetricUnit
    metric_type: MetricType
    required_fields: FrozenSet[str]
    valid_range: Tuple[float, float]
    description: str = ""
    formula: str = ""
    # Decimales de presentación (display_value); el cálculo usa siempre 4
    precision: int = 2

    def in_range(self, value: float) -> bool:
        low, high = self.valid_range
        return low <= value <= high


DEFAULT_DEFINITIONS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        id="revenue_growth",
        name="Revenue Growth Rate",
        category=MetricCategory.GROWTH,
        unit=MetricUnit.PERCENTAGE,
        metric_type=MetricType.REVENUE_GROWTH,
        required_fields=frozenset({"currentARR", "previousARR"}),
        valid_range=(-100.0, 1000.0),
        description="Percentage change in ARR between periods",
        formula="((Current ARR - Previous ARR) / Previous ARR) x 100",
    ),
    MetricDefinition(
        id="net_dollar_retention",
        name="Net Dollar Retention",
        category=MetricCategory.RETENTION,
        unit=MetricUnit.PERCENTAGE,
        metric_type=MetricType.NDR,
        required_fields=frozenset({"beginningARR", "expansion", "contraction", "churn"}),
        valid_range=(0.0, 200.0),
        description="Revenue retention including expansions",
        formula="((Beginning ARR + Expansion - Contraction - Churn) / Beginning ARR) x 100",
    ),
    MetricDefinition(
        id="magic_number",
        name="Magic Number",
        category=MetricCategory.EFFICIENCY,
        unit=MetricUnit.RATIO,
        metric_type=MetricType.MAGIC_NUMBER,
        required_fields=frozenset({"netNewARR", "salesMarketingSpend"}),
        valid_range=(-10.0, 10.0),
        description="Sales efficiency metric",
        formula="Net New ARR / Sales & Marketing Spend",
        precision=3,
    ),
    MetricDefinition(
        id="ebitda_margin",
        name="EBITDA Margin",
        category=MetricCategory.PROFITABILITY,
        unit=MetricUnit.PERCENTAGE,
        metric_type=MetricType.EBITDA_MARGIN,
        required_fields=frozenset({"ebitda", "revenue"}),
        valid_range=(-100.0, 100.0),
        description="Profitability metric as percentage of revenue",
        formula="(EBITDA / Revenue) x 100",
    ),
    MetricDefinition(
        id="arr_per_employee",
        name="ARR per Employee",
        category=MetricCategory.EFFICIENCY,
        unit=MetricUnit.CURRENCY,
        metric_type=MetricType.ARR_PER_EMPLOYEE,
        required_fields=frozenset({"totalARR", "employeeCount"}),
        valid_range=(0.0, 1_000_000.0),
        description="Revenue efficiency per employee",
        formula="Total ARR / Full-time Employee Count",
        precision=0,
    ),
)


class MetricDefinitionRegistry:
    """
    Registro de definiciones de métricas.

    Uso:
        registry = MetricDefinitionRegistry.with_defaults()
        definition = registry.get("revenue_growth")
    """

    def __init__(self, definitions: Optional[Iterable[MetricDefinition]] = None):
        self._definitions: Dict[str, MetricDefinition] = {}
        self._frozen = False
        for definition in definitions or ():
            self.register(definition)

    @classmethod
    def with_defaults(cls) -> "MetricDefinitionRegistry":
        """Registro con las métricas estándar, ya congelado."""
        registry = cls(DEFAULT_DEFINITIONS)
        registry.freeze()
        return registry

    def register(self, definition: MetricDefinition) -> None:
        if self._frozen:
            raise RuntimeError("El registro de definiciones está congelado")
        if definition.id in self._definitions:
            raise ValueError(f"Definición duplicada: {definition.id}")
        low, high = definition.valid_range
        if low > high:
            raise ValueError(f"Rango inválido para {definition.id}: {definition.valid_range}")
        self._definitions[definition.id] = definition

    def freeze(self) -> None:
        self._frozen = True
        logger.info(f"Registro de métricas cargado: {len(self._definitions)} definiciones")

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, metric_id: str) -> MetricDefinition:
        """
        Obtiene una definición.

        Raises:
            NotFoundError: Si el id no está registrado
        """
        definition = self._definitions.get(metric_id)
        if definition is None:
            raise NotFoundError(f"Métrica desconocida: {metric_id}", metric_id=metric_id)
        return definition

    def find_by_type(self, metric_type: MetricType) -> MetricDefinition:
        for definition in self._definitions.values():
            if definition.metric_type == metric_type:
                return definition
        raise NotFoundError(f"Sin definición para el tipo {metric_type}")

    def __contains__(self, metric_id: object) -> bool:
        return metric_id in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def ids(self) -> List[str]:
        return list(self._definitions)

    def all(self) -> Mapping[str, MetricDefinition]:
        """Vista de solo lectura."""
        return MappingProxyType(self._definitions)
