"""
Application Context

Contenedor de dependencias del núcleo de métricas. Construye una sola vez
el registro de definiciones, el cache, el circuit breaker, el fetcher y el
servicio, y los pasa por referencia a quien los necesite.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional, Protocol
from contextlib import asynccontextmanager
import asyncio

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings, Settings
from src.metrics.definitions import MetricDefinitionRegistry
from src.services.cache_store import CacheStore
from src.services.metrics_service import BackingStore, MetricsService
from src.services.resilience import CircuitBreaker, ResilientFetcher, RetryPolicy
from src.utils.logger import get_logger
from src.utils.metrics import get_metrics


# ============================================================================
# PROTOCOLOS (Interfaces)
# ============================================================================

class DatabaseProviderProtocol(Protocol):
    """Protocolo para proveedores de base de datos."""

    async def initialize(self) -> None:
        """Inicializa la conexión."""
        ...

    def get_session(self) -> Any:
        """Context manager async que proporciona una sesión."""
        ...

    async def close(self) -> None:
        """Cierra las conexiones."""
        ...


# ============================================================================
# IMPLEMENTACIONES
# ============================================================================

class DatabaseProvider:
    """Proveedor de base de datos con lazy initialization."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self._initialized = False
        self._session_factory = None

    async def initialize(self) -> None:
        """Inicializa la conexión a la base de datos."""
        if not self._initialized:
            from src.database.connection import init_async_db
            self._session_factory = init_async_db(self.database_url)
            self._initialized = True

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Proporciona una sesión de base de datos."""
        if not self._initialized:
            await self.initialize()

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self) -> None:
        """Cierra las conexiones."""
        from src.database.connection import close_async_db
        await close_async_db()
        self._initialized = False


# ============================================================================
# APPLICATION CONTEXT
# ============================================================================

@dataclass
class AppContext:
    """
    Contenedor de contexto de aplicación.

    Uso:
        ctx = AppContext.create()
        await ctx.initialize()

        result = await ctx.metrics.get_metric("revenue_growth")
    """

    config: Settings
    registry: MetricDefinitionRegistry
    cache: CacheStore
    breaker: CircuitBreaker
    fetcher: ResilientFetcher
    backing_store: BackingStore
    metrics: MetricsService
    db: Optional[DatabaseProviderProtocol] = None
    _logger: Any = field(default=None, repr=False)
    _initialized: bool = field(default=False, repr=False)

    @property
    def logger(self):
        """Logger con lazy initialization."""
        if self._logger is None:
            self._logger = get_logger("app")
        return self._logger

    async def initialize(self) -> None:
        """Inicializa las dependencias con I/O."""
        if not self._initialized:
            if self.db is not None:
                await self.db.initialize()
            self._initialized = True
            self.logger.info(
                f"AppContext inicializado ({len(self.registry)} métricas, "
                f"TTL {self.cache.default_ttl}s)"
            )

    def health_check(self) -> Dict[str, Any]:
        """Health del servicio más las métricas operativas si están habilitadas."""
        health = self.metrics.health_check()
        health["environment"] = self.config.ENVIRONMENT.value
        if self.config.METRICS_ENABLED:
            health["metrics"] = get_metrics()
        return health

    async def shutdown(self) -> None:
        """Cierra todas las conexiones."""
        if self.db is not None:
            await self.db.close()
        self._initialized = False
        self.logger.info("AppContext cerrado")

    @classmethod
    def create(
        cls,
        config: Optional[Settings] = None,
        backing_store: Optional[BackingStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        db: Optional[DatabaseProviderProtocol] = None,
    ) -> "AppContext":
        """
        Factory method para crear el contexto.

        Args:
            config: Settings (por defecto los globales)
            backing_store: Backing store alternativo; por defecto SQLAlchemy
            clock: Reloj para cache y breaker
            sleep: Función de espera entre reintentos
            db: Proveedor de base de datos

        Returns:
            Instancia de AppContext configurada
        """
        config = config or settings
        clock = clock or datetime.utcnow

        if backing_store is None:
            from src.database.queries.metrics_queries import MetricInputsQuery
            db = db or DatabaseProvider(config.get_async_database_url())
            backing_store = MetricInputsQuery(session_factory=db.get_session)

        registry = MetricDefinitionRegistry.with_defaults()
        cache = CacheStore(default_ttl=config.CACHE_TTL_SECONDS, clock=clock)
        breaker = CircuitBreaker(
            failure_threshold=config.CIRCUIT_FAILURE_THRESHOLD,
            reset_timeout_ms=config.CIRCUIT_RESET_TIMEOUT_MS,
            clock=clock,
        )
        policy = RetryPolicy.from_options(
            attempts=config.RETRY_ATTEMPTS,
            delay_ms=config.RETRY_DELAY_MS,
            backoff=config.RETRY_BACKOFF,
            multiplier=config.RETRY_BACKOFF_MULTIPLIER,
            jitter_ms=config.RETRY_JITTER_MS,
            max_delay_ms=config.RETRY_MAX_DELAY_MS,
        )
        fetcher = ResilientFetcher(
            breaker=breaker,
            policy=policy,
            timeout_seconds=config.BACKING_STORE_TIMEOUT_SECONDS,
            sleep=sleep or asyncio.sleep,
        )
        service = MetricsService(
            backing_store=backing_store,
            cache=cache,
            fetcher=fetcher,
            registry=registry,
            bin_count=config.DEFAULT_BIN_COUNT,
            confidence_level=config.CONFIDENCE_LEVEL,
            normalize_distribution=config.NORMALIZE_DISTRIBUTION,
            exclude_outliers=config.EXCLUDE_OUTLIERS,
        )

        return cls(
            config=config,
            registry=registry,
            cache=cache,
            breaker=breaker,
            fetcher=fetcher,
            backing_store=backing_store,
            metrics=service,
            db=db,
        )

    @classmethod
    def create_for_testing(
        cls,
        backing_store: BackingStore,
        clock: Optional[Callable[[], datetime]] = None,
        **overrides
    ) -> "AppContext":
        """
        Factory method para testing: sin esperas entre reintentos ni jitter.

        Args:
            backing_store: Backing store falso
            clock: Reloj controlable
            **overrides: Valores de Settings a sobrescribir

        Returns:
            Instancia de AppContext
        """
        values = {
            "RETRY_DELAY_MS": 0,
            "RETRY_JITTER_MS": 0,
            "BACKING_STORE_TIMEOUT_SECONDS": 1.0,
        }
        values.update(overrides)
        config = settings.model_copy(update=values)

        async def _no_sleep(_delay: float) -> None:
            return None

        return cls.create(
            config=config,
            backing_store=backing_store,
            clock=clock,
            sleep=_no_sleep,
        )


# ============================================================================
# SINGLETON GLOBAL
# ============================================================================

_app_context: Optional[AppContext] = None


def get_app_context() -> AppContext:
    """Obtiene la instancia global del contexto de aplicación."""
    global _app_context
    if _app_context is None:
        _app_context = AppContext.create()
    return _app_context


async def initialize_app_context() -> AppContext:
    """Inicializa y retorna el contexto de aplicación."""
    ctx = get_app_context()
    await ctx.initialize()
    return ctx


async def shutdown_app_context() -> None:
    """Cierra el contexto de aplicación."""
    global _app_context
    if _app_context is not None:
        await _app_context.shutdown()
        _app_context = None


def set_app_context(ctx: Optional[AppContext]) -> None:
    """
    Establece el contexto de aplicación global.
    Útil para testing.
    """
    global _app_context
    _app_context = ctx
