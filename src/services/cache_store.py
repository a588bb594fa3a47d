"""
Cache Store

Almacén clave/valor en memoria con TTL para el patrón cache-aside.

- Expiración verificada en cada lectura (las entradas vencidas son miss
  y se eliminan en ese momento)
- Invalidación exacta, por prefijo (`metrics:*`) o con comodines fnmatch
- Payloads serializados a JSON: mutar el objeto original después de
  `set` no altera lo guardado

No conoce nada de métricas ni bloquea: el single-flight vive en
MetricsService.

Uso:
    from src.services.cache_store import CacheStore

    cache = CacheStore(default_ttl=900)
    cache.set("metrics:revenue_growth", result.to_dict())
    payload = cache.get("metrics:revenue_growth")
    cache.invalidate("metrics:*")
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from fnmatch import fnmatchcase
from typing import Any, Callable, Dict, List, Optional

from config.constants import CACHE_TTL_SECONDS
from src.utils.logger import get_logger

logger = get_logger(__name__)

_WILDCARDS = ("*", "?", "[")


@dataclass
class CacheEntry:
    """Entrada del cache."""
    key: str
    payload: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class CacheStore:
    """
    Cache en memoria con TTL.

    Args:
        default_ttl: TTL por defecto en segundos
        clock: Función que retorna la hora actual (inyectable en tests)
    """

    def __init__(
        self,
        default_ttl: int = CACHE_TTL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl debe ser positivo")
        self.default_ttl = default_ttl
        self._clock = clock or datetime.utcnow
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Optional[Any]:
        """
        Obtiene un payload.

        Returns:
            Copia deserializada del payload, o None si no existe o expiró
        """
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._evictions += 1
            self._misses += 1
            logger.debug(f"Cache expirado: {key}")
            return None

        self._hits += 1
        return json.loads(entry.payload)

    def set(self, key: str, payload: Any, ttl_seconds: Optional[int] = None) -> None:
        """Guarda un payload serializable a JSON."""
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError("ttl_seconds debe ser positivo")

        self._entries[key] = CacheEntry(
            key=key,
            payload=json.dumps(payload),
            expires_at=self._clock() + timedelta(seconds=ttl),
        )

    def invalidate(self, key_or_pattern: str) -> int:
        """
        Elimina una clave o todas las que coincidan con un patrón.

        Args:
            key_or_pattern: Clave exacta, prefijo `metrics:*` o patrón fnmatch

        Returns:
            Número de entradas eliminadas
        """
        if not any(w in key_or_pattern for w in _WILDCARDS):
            removed = 1 if self._entries.pop(key_or_pattern, None) is not None else 0
        else:
            matches = self._match(key_or_pattern)
            for key in matches:
                del self._entries[key]
            removed = len(matches)

        if removed:
            logger.info(f"Cache invalidado: {key_or_pattern} ({removed} entradas)")
        return removed

    def _match(self, pattern: str) -> List[str]:
        if pattern.endswith("*") and not any(w in pattern[:-1] for w in _WILDCARDS):
            prefix = pattern[:-1]
            return [k for k in self._entries if k.startswith(prefix)]
        return [k for k in self._entries if fnmatchcase(k, pattern)]

    def purge_expired(self) -> int:
        """Elimina todas las entradas vencidas."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self._evictions += len(expired)
        return len(expired)

    def clear(self) -> None:
        """Vacía el cache (no resetea estadísticas)."""
        self._entries.clear()

    def keys(self) -> List[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        """Estadísticas de uso."""
        lookups = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
            "default_ttl": self.default_ttl,
        }


__all__ = ["CacheEntry", "CacheStore"]
