"""
Configuración centralizada del sistema

Carga variables de entorno y proporciona acceso a configuración
en todo el proyecto.

Uso:
    from config.settings import settings

    ttl = settings.CACHE_TTL_SECONDS
    attempts = settings.RETRY_ATTEMPTS
"""

from pydantic_settings import BaseSettings
from pydantic import field_validator

from config.constants import Z_SCORES
from config.environments import Environment, get_config


class Settings(BaseSettings):
    """
    Configuración del sistema con soporte multi-entorno.

    Todas las configuraciones se cargan desde variables de entorno
    o archivo .env, con valores por defecto sensatos para desarrollo.
    """

    # =========================================================================
    # ENTORNO
    # =========================================================================
    ENVIRONMENT: Environment = Environment.DEVELOPMENT
    DEBUG: bool = False

    # =========================================================================
    # INFORMACIÓN DEL PROYECTO
    # =========================================================================
    PROJECT_NAME: str = "SaaS Benchmark Metrics"
    VERSION: str = "1.0.0"

    # =========================================================================
    # BASE DE DATOS (backing store)
    # =========================================================================
    DATABASE_URL: str = "sqlite+aiosqlite:///benchmarks.db"
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_POOL_RECYCLE: int = 1800  # Reciclar conexiones cada 30 min

    # =========================================================================
    # CACHE
    # =========================================================================
    CACHE_TTL_SECONDS: int = 900  # 15 minutos

    # =========================================================================
    # RETRY (formato externo: attempts / delayMs / backoff)
    # =========================================================================
    RETRY_ATTEMPTS: int = 3
    RETRY_DELAY_MS: int = 1000
    RETRY_BACKOFF: bool = True
    RETRY_BACKOFF_MULTIPLIER: float = 2.0
    RETRY_JITTER_MS: int = 100
    RETRY_MAX_DELAY_MS: int = 10000

    # =========================================================================
    # CIRCUIT BREAKER
    # =========================================================================
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_RESET_TIMEOUT_MS: int = 30000
    BACKING_STORE_TIMEOUT_SECONDS: float = 5.0

    # =========================================================================
    # ESTADÍSTICAS
    # =========================================================================
    DEFAULT_BIN_COUNT: int = 10
    CONFIDENCE_LEVEL: float = 0.95
    EXCLUDE_OUTLIERS: bool = False
    NORMALIZE_DISTRIBUTION: bool = True

    # =========================================================================
    # LOGGING
    # =========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_MAX_SIZE_MB: int = 50
    LOG_BACKUP_COUNT: int = 10

    # =========================================================================
    # MONITOREO
    # =========================================================================
    METRICS_ENABLED: bool = True

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str, info) -> str:
        """Valida que no se use SQLite en producción"""
        values = info.data
        if values.get("ENVIRONMENT") == Environment.PRODUCTION:
            if "sqlite" in v.lower():
                raise ValueError("SQLite no está permitido en producción. Use PostgreSQL.")
        return v

    @field_validator("RETRY_ATTEMPTS", "CIRCUIT_FAILURE_THRESHOLD", "DEFAULT_BIN_COUNT")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Valores que deben ser al menos 1"""
        if v < 1:
            raise ValueError("El valor debe ser >= 1")
        return v

    @field_validator("RETRY_DELAY_MS", "RETRY_JITTER_MS", "RETRY_MAX_DELAY_MS", "CIRCUIT_RESET_TIMEOUT_MS")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        """Retardos en milisegundos no pueden ser negativos"""
        if v < 0:
            raise ValueError("El retardo no puede ser negativo")
        return v

    @field_validator("CONFIDENCE_LEVEL")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        """Solo se soportan los niveles con z-score conocido"""
        if v not in Z_SCORES:
            raise ValueError(f"Nivel de confianza no soportado: {v}")
        return v

    def get_async_database_url(self) -> str:
        """Retorna la URL de base de datos para async"""
        url = self.DATABASE_URL

        # Convertir URL sync a async si es necesario
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://")
        elif url.startswith("sqlite:///"):
            return url.replace("sqlite:///", "sqlite+aiosqlite:///")

        return url

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# Instancia única de configuración
settings = Settings()

# Aplicar configuración del entorno
env_config = get_config(settings.ENVIRONMENT)
if not settings.DEBUG:
    settings.DEBUG = env_config.DEBUG
