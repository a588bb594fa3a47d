"""
Tests para la estadística de percentiles.
"""

import pytest

from src.metrics.models import PercentileSet
from src.metrics.percentiles import PercentileStatistics
from src.utils.errors import ValidationError


@pytest.fixture
def stats() -> PercentileStatistics:
    return PercentileStatistics()


# ============================================================================
# PERCENTILES
# ============================================================================

class TestPercentiles:
    """Tests de interpolación lineal."""

    def test_poblacion_diez_a_cien(self, stats, benchmark_population):
        """Índice p/100*(n-1) con interpolación lineal."""
        pset = stats.percentiles(55.0, benchmark_population)

        assert pset.p5 == 14.5
        assert pset.p25 == 32.5
        assert pset.p50 == 55.0
        assert pset.p75 == 77.5
        assert pset.p90 == 91.0

    def test_orden_ascendente(self, stats):
        population = [3.2, 18.0, -4.5, 77.1, 12.0, 45.3, 9.9, 101.0]
        pset = stats.percentiles(10.0, population)

        values = pset.as_tuple()
        assert list(values) == sorted(values)
        stats.validate_ordering(pset, strict=True)

    def test_no_modifica_la_poblacion(self, stats):
        population = [50.0, 10.0, 40.0, 20.0, 30.0]
        stats.percentiles(1.0, population)
        assert population == [50.0, 10.0, 40.0, 20.0, 30.0]

    def test_poblacion_constante(self, stats):
        """Población constante colapsa todos los percentiles."""
        pset = stats.percentiles(5.0, [5.0] * 6)

        assert pset.as_tuple() == (5.0, 5.0, 5.0, 5.0, 5.0)
        stats.validate_ordering(pset, strict=True)

    def test_datos_insuficientes(self, stats):
        with pytest.raises(ValidationError) as exc_info:
            stats.percentiles(1.0, [1.0, 2.0, 3.0, 4.0])

        assert exc_info.value.field == "benchmark_population"

    def test_valor_no_finito_en_poblacion(self, stats):
        with pytest.raises(ValidationError):
            stats.percentiles(1.0, [1.0, 2.0, float("nan"), 4.0, 5.0])

    def test_valor_de_metrica_no_finito(self, stats, benchmark_population):
        with pytest.raises(ValidationError):
            stats.percentiles(float("inf"), benchmark_population)

    def test_percentile_value_extremos(self, stats, benchmark_population):
        assert stats.percentile_value(benchmark_population, 0) == 10.0
        assert stats.percentile_value(benchmark_population, 100) == 100.0

    def test_percentile_value_fuera_de_rango(self, stats, benchmark_population):
        with pytest.raises(ValidationError):
            stats.percentile_value(benchmark_population, 101)


# ============================================================================
# BANDAS DE CONFIANZA
# ============================================================================

class TestConfidenceBounds:
    """Tests de bandas de confianza."""

    def test_bandas_contienen_el_percentil(self, stats, benchmark_population):
        pset = stats.percentiles(50.0, benchmark_population)
        bounds = stats.confidence_bounds(benchmark_population)

        assert set(bounds) == {"p5", "p25", "p50", "p75", "p90"}
        for name, value in pset.to_dict().items():
            lower, upper = bounds[name]
            assert lower <= value <= upper
            assert 10.0 <= lower and upper <= 100.0

    def test_fraccion_recortada_al_minimo(self, stats, benchmark_population):
        """p5 con n=10: la banda inferior se recorta al mínimo."""
        bounds = stats.confidence_bounds(benchmark_population)
        assert bounds["p5"][0] == 10.0

    def test_99_mas_ancha_que_95(self, stats, benchmark_population):
        narrow = stats.confidence_bounds(benchmark_population, confidence=0.95)["p50"]
        wide = stats.confidence_bounds(benchmark_population, confidence=0.99)["p50"]

        assert wide[0] < narrow[0]
        assert wide[1] > narrow[1]

    def test_nivel_no_soportado(self, stats, benchmark_population):
        with pytest.raises(ValidationError) as exc_info:
            stats.confidence_bounds(benchmark_population, confidence=0.9)

        assert exc_info.value.field == "confidence"


# ============================================================================
# RANGO PERCENTIL
# ============================================================================

class TestPercentileRank:
    """Tests de la posición de un valor en la población."""

    def test_valor_intermedio(self, stats, benchmark_population):
        assert stats.percentile_rank(55.0, benchmark_population) == 50.0

    def test_bajo_el_minimo(self, stats, benchmark_population):
        assert stats.percentile_rank(5.0, benchmark_population) == 0.0
        assert stats.percentile_rank(10.0, benchmark_population) == 0.0

    def test_sobre_el_maximo(self, stats, benchmark_population):
        assert stats.percentile_rank(150.0, benchmark_population) == 100.0
        assert stats.percentile_rank(100.0, benchmark_population) == 100.0

    def test_en_un_punto(self, stats, benchmark_population):
        assert stats.percentile_rank(40.0, benchmark_population) == pytest.approx(33.3333)


# ============================================================================
# ORDEN
# ============================================================================

class TestValidateOrdering:

    def test_desordenado(self):
        with pytest.raises(ValidationError):
            PercentileStatistics.validate_ordering(PercentileSet(1, 3, 2, 4, 5))

    def test_empate_estricto(self):
        pset = PercentileSet(1, 2, 2, 3, 4)

        with pytest.raises(ValidationError):
            PercentileStatistics.validate_ordering(pset, strict=True)
        PercentileStatistics.validate_ordering(pset, strict=False)
