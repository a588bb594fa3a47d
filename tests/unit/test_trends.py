"""
Tests para el análisis de tendencias.
"""

import pytest

from src.metrics.trends import TrendDirection, calculate_trend, normal_cdf
from src.utils.errors import CalculationError, ValidationError


class TestNormalCdf:

    def test_centro(self):
        assert normal_cdf(0) == 0.5

    def test_z_95(self):
        assert normal_cdf(1.96) == pytest.approx(0.975, abs=1e-3)

    def test_simetria(self):
        assert normal_cdf(-1.0) == pytest.approx(1 - normal_cdf(1.0))


class TestCalculateTrend:
    """Tests de dirección, porcentaje y confianza."""

    def test_subida(self):
        trend = calculate_trend(120.0, 100.0)

        assert trend.direction == TrendDirection.UP
        assert trend.percentage == 20.0
        assert trend.confidence == 0.0
        assert trend.significance is False

    def test_bajada(self):
        trend = calculate_trend(95.0, 100.0)

        assert trend.direction == TrendDirection.DOWN
        assert trend.percentage == -5.0

    def test_estable_bajo_umbral(self):
        assert calculate_trend(100.005, 100.0).direction == TrendDirection.FLAT

    def test_anterior_negativo_usa_valor_absoluto(self):
        trend = calculate_trend(-50.0, -100.0)

        assert trend.direction == TrendDirection.UP
        assert trend.percentage == 50.0

    def test_anterior_cero(self):
        with pytest.raises(CalculationError):
            calculate_trend(10.0, 0.0)

    def test_valor_no_finito(self):
        with pytest.raises(ValidationError):
            calculate_trend(float("nan"), 1.0)

    def test_significativo_con_historico(self):
        trend = calculate_trend(110.0, 100.0, [100.0, 102.0, 98.0, 101.0, 99.0])

        assert trend.confidence >= 0.95
        assert trend.significance is True

    def test_no_significativo(self):
        """z = 0.5/sqrt(2) -> confianza erf(0.25)."""
        trend = calculate_trend(100.5, 100.0, [100.0, 102.0, 98.0, 101.0, 99.0])

        assert trend.confidence == pytest.approx(0.2763, abs=1e-4)
        assert trend.significance is False

    def test_historico_insuficiente(self):
        trend = calculate_trend(200.0, 100.0, [100.0, 101.0])
        assert trend.confidence == 0.0

    def test_historico_constante(self):
        assert calculate_trend(20.0, 10.0, [10.0, 10.0, 10.0]).confidence == 1.0
        assert calculate_trend(10.0, 9.0, [10.0, 10.0, 10.0]).confidence == 0.0

    def test_to_dict(self):
        data = calculate_trend(120.0, 100.0).to_dict()
        assert data["direction"] == "up"
        assert data["percentage"] == 20.0
