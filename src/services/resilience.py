"""
Resiliencia del Backing Store

Proporciona:
- Circuit breaker explícito (CLOSED / OPEN / HALF_OPEN)
- Retry con backoff exponencial, jitter y tope de delay
- Timeout por intento
- Clasificación de errores transitorios (red, timeouts, 5xx, conexiones
  de base de datos invalidadas)

Una llamada lógica que agota sus reintentos cuenta como UN fallo para el
breaker. Los errores no transitorios se propagan de inmediato y no cuentan.

Uso:
    breaker = CircuitBreaker(failure_threshold=5, reset_timeout_ms=30000)
    fetcher = ResilientFetcher(breaker, RetryPolicy.from_options(3, 1000, True))
    raw = await fetcher.call(lambda: store.fetch_raw_inputs("revenue_growth"))
"""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import httpx
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

from src.utils.errors import CircuitOpenError, MetricsError, TransientError, ValidationError
from src.utils.logger import get_logger
from src.utils.metrics import backing_store_calls, backing_store_retries, circuit_state_gauge

logger = get_logger(__name__)

T = TypeVar("T")


# ============================================================================
# CIRCUIT BREAKER
# ============================================================================

class CircuitState(str, Enum):
    """Estados del circuit breaker."""
    CLOSED = "closed"        # Funcionando normal
    OPEN = "open"            # Rechaza llamadas sin I/O
    HALF_OPEN = "half_open"  # Una única llamada de prueba


_GAUGE_VALUES = {
    CircuitState.CLOSED: 0.0,
    CircuitState.HALF_OPEN: 0.5,
    CircuitState.OPEN: 1.0,
}


@dataclass
class CircuitBreaker:
    """
    Circuit breaker de una dependencia.

    Solo sus propios métodos lo mutan, siempre entre awaits.
    """
    failure_threshold: int = 5
    reset_timeout_ms: int = 30000
    name: str = "backing_store"
    clock: Callable[[], datetime] = field(default=datetime.utcnow, repr=False)

    state: CircuitState = field(default=CircuitState.CLOSED)
    consecutive_failures: int = field(default=0)
    opened_at: Optional[datetime] = field(default=None)
    trial_in_flight: bool = field(default=False)

    def __post_init__(self):
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold debe ser >= 1")
        if self.reset_timeout_ms < 0:
            raise ValueError("reset_timeout_ms no puede ser negativo")
        self._publish()

    @property
    def reset_timeout(self) -> timedelta:
        return timedelta(milliseconds=self.reset_timeout_ms)

    def allow_request(self) -> bool:
        """
        Decide si una llamada puede ejecutarse.

        En OPEN, pasado el reset timeout, transiciona a HALF_OPEN y deja
        pasar exactamente una llamada de prueba.
        """
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if self.clock() - self.opened_at < self.reset_timeout:
                return False
            self._transition(CircuitState.HALF_OPEN)

        # HALF_OPEN
        if self.trial_in_flight:
            return False
        self.trial_in_flight = True
        return True

    def record_success(self) -> None:
        """Registra una llamada lógica exitosa."""
        self.consecutive_failures = 0
        self.trial_in_flight = False
        if self.state != CircuitState.CLOSED:
            self.opened_at = None
            self._transition(CircuitState.CLOSED)
            logger.info(f"Circuit breaker {self.name} CERRADO - servicio recuperado")

    def record_failure(self) -> None:
        """Registra una llamada lógica fallida."""
        self.consecutive_failures += 1
        self.trial_in_flight = False

        if self.state == CircuitState.HALF_OPEN:
            self._open()
        elif self.state == CircuitState.CLOSED and self.consecutive_failures >= self.failure_threshold:
            self._open()

    def release_trial(self) -> None:
        """Libera la prueba de HALF_OPEN sin contar éxito ni fallo."""
        self.trial_in_flight = False

    def retry_after_seconds(self) -> Optional[float]:
        """Segundos hasta que se permita la siguiente prueba."""
        if self.state != CircuitState.OPEN or self.opened_at is None:
            return None
        remaining = self.opened_at + self.reset_timeout - self.clock()
        return max(remaining.total_seconds(), 0.0)

    def status(self) -> Dict[str, Any]:
        """Snapshot del estado para health checks."""
        return {
            "name": self.name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "failure_threshold": self.failure_threshold,
            "opened_at": self.opened_at.isoformat() if self.opened_at else None,
            "retry_after_seconds": self.retry_after_seconds(),
        }

    def reset(self) -> None:
        """Vuelve a CLOSED sin historial."""
        self.consecutive_failures = 0
        self.opened_at = None
        self.trial_in_flight = False
        self._transition(CircuitState.CLOSED)

    def _open(self) -> None:
        self.opened_at = self.clock()
        self._transition(CircuitState.OPEN)
        logger.warning(
            f"Circuit breaker {self.name} ABIERTO después de "
            f"{self.consecutive_failures} fallos consecutivos"
        )

    def _transition(self, new_state: CircuitState) -> None:
        if new_state != self.state:
            logger.info(f"Circuit breaker {self.name}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self._publish()

    def _publish(self) -> None:
        circuit_state_gauge.set(_GAUGE_VALUES[self.state], labels={"dependency": self.name})


# ============================================================================
# RETRY POLICY
# ============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    Política de reintentos.

    Delay del intento k (k >= 1): base * multiplier^(k-1) + uniform(0, jitter),
    con tope en max_delay_ms. Sin backoff el multiplicador es 1.
    """
    max_attempts: int = 3
    base_delay_ms: float = 1000
    backoff_multiplier: float = 2.0
    jitter_ms: float = 100
    max_delay_ms: float = 10000

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValidationError(
                f"attempts debe ser >= 1: {self.max_attempts}",
                field="attempts",
                value=self.max_attempts,
            )
        if self.base_delay_ms < 0 or self.jitter_ms < 0 or self.max_delay_ms < 0:
            raise ValidationError(
                "Los delays de retry no pueden ser negativos",
                field="delayMs",
                value=self.base_delay_ms,
            )
        if self.backoff_multiplier < 1:
            raise ValidationError(
                f"backoff_multiplier debe ser >= 1: {self.backoff_multiplier}",
                field="backoff_multiplier",
                value=self.backoff_multiplier,
            )

    @classmethod
    def from_options(
        cls,
        attempts: int,
        delay_ms: float,
        backoff: bool,
        multiplier: float = 2.0,
        jitter_ms: float = 100,
        max_delay_ms: float = 10000
    ) -> "RetryPolicy":
        """Construye la política desde {attempts, delayMs, backoff}."""
        return cls(
            max_attempts=attempts,
            base_delay_ms=delay_ms,
            backoff_multiplier=multiplier if backoff else 1.0,
            jitter_ms=jitter_ms,
            max_delay_ms=max_delay_ms,
        )

    def get_delay(self, attempt: int) -> float:
        """Delay en segundos antes del reintento que sigue al intento `attempt`."""
        delay = self.base_delay_ms * (self.backoff_multiplier ** (attempt - 1))
        if self.jitter_ms:
            delay += random.uniform(0, self.jitter_ms)
        return min(delay, self.max_delay_ms) / 1000


# ============================================================================
# TRANSIENT ERRORS
# ============================================================================

def is_transient_error(error: BaseException) -> bool:
    """Indica si un error merece reintento."""
    if isinstance(error, TransientError):
        return True
    if isinstance(error, MetricsError):
        return False

    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    if isinstance(error, httpx.TransportError):
        return True

    if isinstance(error, (OperationalError, InterfaceError)):
        return True
    if isinstance(error, DBAPIError):
        return bool(error.connection_invalidated)

    return isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError))


# ============================================================================
# RESILIENT FETCHER
# ============================================================================

class ResilientFetcher:
    """
    Ejecuta llamadas al backing store con breaker, retry y timeout.

    Args:
        breaker: Circuit breaker de la dependencia
        policy: Política de reintentos
        timeout_seconds: Timeout de cada intento (None = sin límite)
        sleep: Función de espera (inyectable en tests)
    """

    def __init__(
        self,
        breaker: Optional[CircuitBreaker] = None,
        policy: Optional[RetryPolicy] = None,
        timeout_seconds: Optional[float] = 5.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.breaker = breaker if breaker is not None else CircuitBreaker()
        self.policy = policy if policy is not None else RetryPolicy()
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep

    async def call(self, fn: Callable[[], Awaitable[T]], operation: str = "fetch") -> T:
        """
        Ejecuta `fn` como una llamada lógica.

        Raises:
            CircuitOpenError: El breaker rechaza la llamada (sin I/O)
            Exception: El último error transitorio tras agotar reintentos,
                o cualquier error no transitorio de inmediato
        """
        if not self.breaker.allow_request():
            backing_store_calls.inc(labels={"outcome": "rejected"})
            raise CircuitOpenError(
                f"Circuit breaker {self.breaker.name} abierto para {operation}",
                dependency=self.breaker.name,
                retry_after_seconds=self.breaker.retry_after_seconds(),
            )

        last_error: Optional[BaseException] = None

        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                if self.timeout_seconds is None:
                    result = await fn()
                else:
                    result = await asyncio.wait_for(fn(), self.timeout_seconds)

            except asyncio.CancelledError:
                self.breaker.release_trial()
                raise

            except Exception as e:
                if not is_transient_error(e):
                    self.breaker.release_trial()
                    backing_store_calls.inc(labels={"outcome": "error"})
                    raise

                last_error = e
                if attempt >= self.policy.max_attempts:
                    break

                delay = self.policy.get_delay(attempt)
                backing_store_retries.inc()
                logger.warning(
                    f"{operation}: intento {attempt}/{self.policy.max_attempts} falló "
                    f"({type(e).__name__}: {e}). Reintentando en {delay:.2f}s"
                )
                try:
                    await self._sleep(delay)
                except asyncio.CancelledError:
                    self.breaker.release_trial()
                    raise

            else:
                self.breaker.record_success()
                backing_store_calls.inc(labels={"outcome": "success"})
                return result

        self.breaker.record_failure()
        backing_store_calls.inc(labels={"outcome": "failure"})
        logger.error(
            f"{operation}: reintentos agotados ({self.policy.max_attempts}): "
            f"{type(last_error).__name__}: {last_error}"
        )
        raise last_error

    def status(self) -> Dict[str, Any]:
        return {
            "circuit": self.breaker.status(),
            "max_attempts": self.policy.max_attempts,
            "timeout_seconds": self.timeout_seconds,
        }


__all__ = [
    "CircuitState",
    "CircuitBreaker",
    "RetryPolicy",
    "is_transient_error",
    "ResilientFetcher",
]
