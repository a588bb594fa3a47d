"""
Tests de integración del backing store SQLAlchemy y del servicio completo.
"""

from datetime import datetime

import pytest

from src.core.context import AppContext, DatabaseProvider
from src.database.connection import create_tables_async
from src.database.queries import DataSourceQuery, MetricInputsQuery
from src.utils.errors import NotFoundError
from tests.factories import (
    BENCHMARK_POPULATION,
    BenchmarkDataPointFactory,
    DataSourceFactory,
    MetricInputFactory,
)


async def _seed_revenue_growth(session, source, arr_range="1M-5M", values=BENCHMARK_POPULATION):
    await MetricInputFactory.create_async(
        session, source_id=source.id, field_name="currentARR",
        value=900_000.0, period=datetime(2023, 12, 31),
    )
    await MetricInputFactory.create_async(
        session, source_id=source.id, field_name="currentARR",
        value=1_200_000.0, period=datetime(2024, 3, 31),
    )
    await MetricInputFactory.create_async(
        session, source_id=source.id, field_name="previousARR",
        value=1_000_000.0, period=datetime(2024, 3, 31),
    )
    for value in values:
        await BenchmarkDataPointFactory.create_async(
            session, source_id=source.id, value=value, arr_range=arr_range,
        )


@pytest.fixture
async def seeded_source(async_db_session):
    source = await DataSourceFactory.create_async(async_db_session, name="Benchmark Survey")
    await _seed_revenue_growth(async_db_session, source)
    await async_db_session.commit()
    return source


@pytest.fixture
def store(async_session_factory) -> MetricInputsQuery:
    return MetricInputsQuery(async_session_factory)


class TestMetricInputsQuery:
    """Tests de lectura de datos crudos."""

    @pytest.mark.asyncio
    async def test_ultimo_periodo_gana(self, store, seeded_source):
        raw = await store.fetch_raw_inputs("revenue_growth")

        assert raw.fields == {"currentARR": 1_200_000.0, "previousARR": 1_000_000.0}
        assert sorted(raw.benchmark_population) == BENCHMARK_POPULATION
        assert raw.source_ids == [seeded_source.id]

    @pytest.mark.asyncio
    async def test_excluye_fuentes_inactivas(self, store, seeded_source, async_db_session):
        inactive = await DataSourceFactory.create_async(async_db_session, active=False)
        await BenchmarkDataPointFactory.create_async(
            async_db_session, source_id=inactive.id, value=5000.0,
        )
        await async_db_session.commit()

        raw = await store.fetch_raw_inputs("revenue_growth")

        assert 5000.0 not in raw.benchmark_population
        assert inactive.id not in raw.source_ids

    @pytest.mark.asyncio
    async def test_excluye_fuentes_eliminadas(self, store, seeded_source, async_db_session):
        deleted = await DataSourceFactory.create_async(async_db_session)
        deleted.soft_delete()
        await MetricInputFactory.create_async(
            async_db_session, source_id=deleted.id, field_name="currentARR",
            value=9_999_999.0, period=datetime(2025, 1, 1),
        )
        await async_db_session.commit()

        raw = await store.fetch_raw_inputs("revenue_growth")

        assert raw.fields["currentARR"] == 1_200_000.0

    @pytest.mark.asyncio
    async def test_sin_datos(self, store, seeded_source):
        with pytest.raises(NotFoundError) as exc_info:
            await store.fetch_raw_inputs("magic_number")

        assert exc_info.value.metric_id == "magic_number"

    @pytest.mark.asyncio
    async def test_filtro_por_rango_arr(self, async_session_factory, seeded_source, async_db_session):
        for value in (200.0, 210.0, 220.0, 230.0, 240.0):
            await BenchmarkDataPointFactory.create_async(
                async_db_session, source_id=seeded_source.id, value=value, arr_range="5M-20M",
            )
        await async_db_session.commit()

        raw = await MetricInputsQuery(async_session_factory, arr_range="5M-20M").fetch_raw_inputs(
            "revenue_growth"
        )

        assert sorted(raw.benchmark_population) == [200.0, 210.0, 220.0, 230.0, 240.0]


class TestEndToEnd:
    """Servicio completo sobre SQLite en memoria."""

    @pytest.fixture
    def context(self, store, frozen_clock) -> AppContext:
        return AppContext.create_for_testing(backing_store=store, clock=frozen_clock)

    @pytest.mark.asyncio
    async def test_get_metric(self, context, seeded_source):
        result = await context.metrics.get_metric("revenue_growth")

        assert result.value == 20.0
        assert result.percentiles.p50 == 55.0
        assert result.source_ids == [seeded_source.id]

    @pytest.mark.asyncio
    async def test_invalidar_por_fuente(self, context, seeded_source):
        await context.metrics.get_metric("revenue_growth")

        assert await context.metrics.invalidate_metric(seeded_source.id) == 1
        assert len(context.cache) == 0

    @pytest.mark.asyncio
    async def test_metrica_sin_datos(self, context, seeded_source):
        with pytest.raises(NotFoundError):
            await context.metrics.get_metric("ebitda_margin")


class TestDataSourceQuery:
    """Queries de fuentes de datos."""

    @pytest.mark.asyncio
    async def test_get_active(self, async_db_session, seeded_source):
        paused = await DataSourceFactory.create_async(async_db_session, active=False)
        removed = await DataSourceFactory.create_async(async_db_session)
        removed.soft_delete()
        await async_db_session.flush()

        query = DataSourceQuery()
        active = await query.get_active(async_db_session)

        assert [s.id for s in active] == [seeded_source.id]
        assert await query.count(async_db_session) == 2
        assert await query.get_by_id(async_db_session, removed.id) is None
        assert await query.get_by_id(async_db_session, removed.id, include_deleted=True) is removed
        assert {s.id for s in await query.get_all(async_db_session)} == {seeded_source.id, paused.id}

    @pytest.mark.asyncio
    async def test_database_provider(self, tmp_path):
        provider = DatabaseProvider(f"sqlite+aiosqlite:///{tmp_path / 'benchmarks.db'}")
        await provider.initialize()
        await create_tables_async()

        async with provider.get_session() as db:
            await DataSourceQuery().create(db, name="Survey")

        async with provider.get_session() as db:
            assert await DataSourceQuery().count(db) == 1

        await provider.close()
