"""
Tests para el motor de fórmulas.

Prueba el cálculo de cada métrica, la validación de entradas y de rango.
"""

import math
from datetime import datetime

import pytest

from config.constants import MetricType
from src.metrics.definitions import MetricDefinitionRegistry
from src.metrics.formulas import FormulaEngine, round_value
from src.metrics.models import MetricValue
from src.utils.errors import CalculationError, ErrorCategory, ValidationError
from tests.factories import NdrFieldsFactory, RevenueGrowthFieldsFactory


@pytest.fixture
def engine() -> FormulaEngine:
    return FormulaEngine()


# ============================================================================
# FÓRMULAS
# ============================================================================

class TestFormulas:
    """Tests de cada fórmula."""

    def test_revenue_growth(self, engine):
        """1M -> 1.2M ARR es 20% de crecimiento."""
        assert engine.compute(MetricType.REVENUE_GROWTH, RevenueGrowthFieldsFactory()) == 20.0

    def test_revenue_growth_negativo(self, engine):
        value = engine.compute("revenue_growth", {"currentARR": 900_000, "previousARR": 1_000_000})
        assert value == -10.0

    def test_net_dollar_retention(self, engine):
        """(1M + 100k - 20k - 30k) / 1M = 105%."""
        assert engine.compute(MetricType.NDR, NdrFieldsFactory()) == 105.0

    def test_magic_number(self, engine):
        value = engine.compute(
            MetricType.MAGIC_NUMBER,
            {"netNewARR": 500_000, "salesMarketingSpend": 400_000},
        )
        assert value == 1.25

    def test_ebitda_margin(self, engine):
        value = engine.compute(MetricType.EBITDA_MARGIN, {"ebitda": 200_000, "revenue": 1_000_000})
        assert value == 20.0

    def test_arr_per_employee(self, engine):
        value = engine.compute(
            MetricType.ARR_PER_EMPLOYEE,
            {"totalARR": 10_000_000, "employeeCount": 50},
        )
        assert value == 200_000.0

    def test_redondeo_a_cuatro_decimales(self, engine):
        value = engine.compute("revenue_growth", {"currentARR": 1, "previousARR": 3})
        assert value == -66.6667

    def test_determinista(self, engine):
        """Mismas entradas, mismo resultado."""
        inputs = {"currentARR": 1_234_567.89, "previousARR": 987_654.32}
        results = {engine.compute("revenue_growth", inputs) for _ in range(20)}
        assert len(results) == 1

    def test_campos_extra_se_ignoran(self, engine):
        inputs = RevenueGrowthFieldsFactory(otherField=42)
        assert engine.compute("revenue_growth", inputs) == 20.0

    def test_compute_value_retorna_metric_value(self, engine):
        definition = engine.registry.get("revenue_growth")
        now = datetime(2024, 1, 1)

        result = engine.compute_value(definition, RevenueGrowthFieldsFactory(), computed_at=now)

        assert isinstance(result, MetricValue)
        assert result.metric_id == "revenue_growth"
        assert result.value == 20.0
        assert result.computed_at == now


# ============================================================================
# ERRORES
# ============================================================================

class TestFormulaErrors:
    """Tests de validación y errores de cálculo."""

    def test_previous_arr_cero(self, engine):
        """División por cero es CalculationError."""
        with pytest.raises(CalculationError) as exc_info:
            engine.compute("revenue_growth", {"currentARR": 100_000, "previousARR": 0})

        assert exc_info.value.category == ErrorCategory.CALCULATION
        assert exc_info.value.metric_id == "revenue_growth"
        assert exc_info.value.context.field == "previousARR"

    def test_campo_faltante(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.compute("revenue_growth", {"currentARR": 100_000})

        assert exc_info.value.fields == ["previousARR"]
        assert "previousARR" in exc_info.value.message

    def test_varios_campos_faltantes(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.compute(MetricType.NDR, {"beginningARR": 1_000_000})

        assert exc_info.value.fields == ["churn", "contraction", "expansion"]

    @pytest.mark.parametrize("bad_value", [float("nan"), float("inf"), "100", None, True])
    def test_valor_no_numerico(self, engine, bad_value):
        with pytest.raises(ValidationError) as exc_info:
            engine.compute("revenue_growth", {"currentARR": bad_value, "previousARR": 1_000})

        assert "currentARR" in exc_info.value.fields

    def test_fuera_de_rango_no_se_recorta(self, engine):
        """1100% excede el máximo de 1000%."""
        with pytest.raises(ValidationError) as exc_info:
            engine.compute("revenue_growth", {"currentARR": 12_000_000, "previousARR": 1_000_000})

        assert exc_info.value.value == 1100.0

    def test_ndr_negativo_fuera_de_rango(self, engine):
        inputs = NdrFieldsFactory(churn=2_000_000.0)
        with pytest.raises(ValidationError) as exc_info:
            engine.compute(MetricType.NDR, inputs)

        assert exc_info.value.field == "churn"

    def test_tipo_no_soportado(self, engine):
        with pytest.raises(CalculationError):
            engine.compute("customer_happiness", {"score": 1})

    def test_registro_personalizado(self):
        """El motor usa el registro que se le inyecta."""
        registry = MetricDefinitionRegistry()
        engine = FormulaEngine(registry)

        with pytest.raises(CalculationError):
            engine.compute("revenue_growth", RevenueGrowthFieldsFactory())


class TestRoundValue:
    """Tests del redondeo half-up."""

    def test_half_up(self):
        assert round_value(2.00005) == 2.0001
        assert round_value(-2.00005) == -2.0001

    def test_precision(self):
        assert round_value(math.pi, 2) == 3.14

    def test_valores_grandes(self):
        assert round_value(1e300) == 1e300
        assert round_value(-1.5e24, 0) == -1.5e24


class TestDomainChecks:
    """Tests de las restricciones de dominio de cada fórmula."""

    @pytest.mark.parametrize("metric_id,inputs,field", [
        ("revenue_growth", {"currentARR": -1.0, "previousARR": 1_000_000}, "currentARR"),
        ("revenue_growth", {"currentARR": 1_000_000, "previousARR": -5.0}, "previousARR"),
        ("net_dollar_retention",
         {"beginningARR": 0, "expansion": 0, "contraction": 0, "churn": 0}, "beginningARR"),
        ("net_dollar_retention",
         {"beginningARR": 1_000_000, "expansion": -1, "contraction": 0, "churn": 0}, "expansion"),
        ("net_dollar_retention",
         {"beginningARR": 1_000_000, "expansion": 0, "contraction": -1, "churn": 0}, "contraction"),
        ("net_dollar_retention",
         {"beginningARR": 1_000_000, "expansion": 0, "contraction": 0, "churn": -1}, "churn"),
        ("magic_number", {"netNewARR": 100_000, "salesMarketingSpend": 0}, "salesMarketingSpend"),
        ("magic_number", {"netNewARR": 100_000, "salesMarketingSpend": -10}, "salesMarketingSpend"),
        ("ebitda_margin", {"ebitda": 100_000, "revenue": 0}, "revenue"),
        ("arr_per_employee", {"totalARR": -1, "employeeCount": 10}, "totalARR"),
        ("arr_per_employee", {"totalARR": 1_000_000, "employeeCount": 0}, "employeeCount"),
        ("arr_per_employee", {"totalARR": 1_000_000, "employeeCount": 2.5}, "employeeCount"),
    ])
    def test_entrada_fuera_de_dominio(self, engine, metric_id, inputs, field):
        with pytest.raises(ValidationError) as exc_info:
            engine.compute(metric_id, inputs)

        assert exc_info.value.field == field
        assert exc_info.value.metric_id == metric_id

    def test_perdidas_superan_arr_inicial(self, engine):
        inputs = NdrFieldsFactory(contraction=600_000.0, churn=500_000.0)

        with pytest.raises(ValidationError) as exc_info:
            engine.compute(MetricType.NDR, inputs)

        assert exc_info.value.field == "churn"
        assert exc_info.value.value == 1_100_000.0

    def test_employee_count_entero_como_float(self, engine):
        value = engine.compute("arr_per_employee", {"totalARR": 1_000_000, "employeeCount": 4.0})
        assert value == 250_000.0

    def test_ratio_enorme_es_error_de_rango(self, engine):
        """Un resultado de 1e32 se rechaza por rango, no rompe el redondeo."""
        with pytest.raises(ValidationError) as exc_info:
            engine.compute("revenue_growth", {"currentARR": 1e30, "previousARR": 1.0})

        assert exc_info.value.value == pytest.approx(1e32)
        assert exc_info.value.field == "revenue_growth"


class TestDisplayValue:

    def test_arr_per_employee_en_unidades(self, engine):
        definition = engine.registry.get("arr_per_employee")
        value = engine.compute(definition, {"totalARR": 1_000_000, "employeeCount": 3})

        assert value == 333333.3333
        assert engine.display_value(definition, value) == 333333.0

    def test_magic_number_tres_decimales(self, engine):
        definition = engine.registry.get("magic_number")
        assert engine.display_value(definition, 1.23456) == 1.235
