"""
Tests para el contenedor de dependencias.
"""

import pytest

from src.core.context import (
    AppContext,
    DatabaseProvider,
    get_app_context,
    set_app_context,
    shutdown_app_context,
)
from src.database.queries import MetricInputsQuery


class TestAppContext:
    """Tests de construcción y ciclo de vida."""

    def test_singletons_compartidos(self, app_context):
        assert app_context.metrics.cache is app_context.cache
        assert app_context.metrics.fetcher is app_context.fetcher
        assert app_context.fetcher.breaker is app_context.breaker
        assert app_context.metrics.registry is app_context.registry

    def test_configuracion_aplicada(self, app_context):
        assert app_context.breaker.failure_threshold == 2
        assert app_context.fetcher.policy.max_attempts == 3
        assert app_context.fetcher.policy.jitter_ms == 0
        assert app_context.cache.default_ttl == 900

    def test_backing_store_por_defecto(self):
        ctx = AppContext.create()

        assert isinstance(ctx.backing_store, MetricInputsQuery)
        assert isinstance(ctx.db, DatabaseProvider)

    def test_health_check_con_metricas(self, app_context):
        health = app_context.health_check()

        assert health["status"] == "healthy"
        assert health["environment"] == "development"
        assert "metrics_cache_hits_total" in health["metrics"]

    def test_health_check_sin_metricas(self, fake_store, frozen_clock):
        ctx = AppContext.create_for_testing(fake_store, frozen_clock, METRICS_ENABLED=False)
        assert "metrics" not in ctx.health_check()

    @pytest.mark.asyncio
    async def test_initialize_y_shutdown(self, app_context):
        await app_context.initialize()
        await app_context.initialize()
        await app_context.shutdown()


class TestGlobalContext:

    def test_set_y_get(self, app_context):
        set_app_context(app_context)
        assert get_app_context() is app_context

    @pytest.mark.asyncio
    async def test_shutdown_resetea(self, app_context):
        set_app_context(app_context)
        await shutdown_app_context()

        assert get_app_context() is not app_context
