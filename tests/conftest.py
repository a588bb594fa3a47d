"""
Pytest Configuration and Fixtures

Configuración global de pytest y fixtures compartidos.
"""

import os
import sys
from pathlib import Path
from typing import AsyncGenerator, List

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Agregar el directorio raíz al path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================

def _set_test_environment() -> None:
    os.environ["ENVIRONMENT"] = "development"
    os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
    os.environ["LOG_LEVEL"] = "WARNING"
    os.environ["DATABASE_ECHO"] = "false"


# Antes de importar src: settings se carga al primer get_logger
_set_test_environment()


def pytest_configure(config):
    """Configuración de pytest."""
    _set_test_environment()


from src.database.connection import Base  # noqa: E402
from src.metrics.models import RawInputs  # noqa: E402
from tests.factories.stores import BENCHMARK_POPULATION, FakeBackingStore, FrozenClock  # noqa: E402


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
async def async_engine():
    """Crea un engine async de base de datos en memoria."""
    from src.database import models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def async_session_factory(async_engine) -> async_sessionmaker:
    """Fábrica de sesiones async ligada al engine en memoria."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture(scope="function")
async def async_db_session(async_session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Proporciona una sesión async de base de datos para tests."""
    async with async_session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# FAKES
# ============================================================================

@pytest.fixture
def frozen_clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def benchmark_population() -> List[float]:
    return list(BENCHMARK_POPULATION)


@pytest.fixture
def revenue_growth_inputs() -> RawInputs:
    """Crecimiento de 1M a 1.2M ARR (20%)."""
    return RawInputs(
        fields={"currentARR": 1_200_000.0, "previousARR": 1_000_000.0},
        benchmark_population=list(BENCHMARK_POPULATION),
        source_ids=["source-a"],
    )


@pytest.fixture
def ndr_inputs() -> RawInputs:
    return RawInputs(
        fields={
            "beginningARR": 1_000_000.0,
            "expansion": 100_000.0,
            "contraction": 20_000.0,
            "churn": 30_000.0,
        },
        benchmark_population=[95.0, 100.0, 102.0, 105.0, 110.0, 115.0, 120.0],
        source_ids=["source-b"],
    )


@pytest.fixture
def fake_store(revenue_growth_inputs, ndr_inputs) -> FakeBackingStore:
    return FakeBackingStore({
        "revenue_growth": revenue_growth_inputs,
        "net_dollar_retention": ndr_inputs,
    })


@pytest.fixture
def app_context(fake_store, frozen_clock):
    """Contexto de aplicación con backing store falso y sin esperas."""
    from src.core.context import AppContext

    return AppContext.create_for_testing(
        backing_store=fake_store,
        clock=frozen_clock,
        CIRCUIT_FAILURE_THRESHOLD=2,
        CIRCUIT_RESET_TIMEOUT_MS=30000,
    )


# ============================================================================
# CLEANUP FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def reset_singletons():
    """Resetea singletons entre tests."""
    yield
    from src.utils.errors import error_registry
    from src.core.context import set_app_context

    error_registry.reset()
    set_app_context(None)
