"""
Base Query Class

Proporciona métodos comunes para todas las queries.
Implementa el patrón Repository.
"""

from typing import TypeVar, Generic, Optional, List, Type, Any
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from src.utils.logger import get_logger

logger = get_logger(__name__)

# Type variable para el modelo
T = TypeVar('T')


class BaseQuery(Generic[T]):
    """
    Clase base para queries con operaciones comunes.

    Uso:
        class DataSourceQuery(BaseQuery[DataSource]):
            model = DataSource

        query = DataSourceQuery()
        source = await query.get_by_id(db, "123")
    """

    model: Type[T] = None

    def __init__(self):
        if self.model is None:
            raise NotImplementedError("Subclass must define 'model' attribute")

    def _base_conditions(self, include_deleted: bool) -> list:
        if not include_deleted and hasattr(self.model, 'is_deleted'):
            return [self.model.is_deleted == False]  # noqa: E712
        return []

    async def get_by_id(
        self,
        db: AsyncSession,
        record_id: Any,
        include_deleted: bool = False
    ) -> Optional[T]:
        """
        Busca un registro por su ID.

        Returns:
            Registro encontrado o None
        """
        conditions = [self.model.id == record_id] + self._base_conditions(include_deleted)
        result = await db.execute(select(self.model).where(*conditions))
        return result.scalar_one_or_none()

    async def get_all(
        self,
        db: AsyncSession,
        limit: int = 50,
        offset: int = 0,
        include_deleted: bool = False
    ) -> List[T]:
        """Obtiene todos los registros con paginación."""
        result = await db.execute(
            select(self.model)
            .where(*self._base_conditions(include_deleted))
            .order_by(self.model.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count(self, db: AsyncSession, include_deleted: bool = False) -> int:
        """Cuenta registros."""
        result = await db.execute(
            select(func.count(self.model.id)).where(*self._base_conditions(include_deleted))
        )
        return result.scalar() or 0

    async def create(self, db: AsyncSession, **kwargs) -> T:
        """Crea un registro (sin commit)."""
        instance = self.model(**kwargs)
        db.add(instance)
        await db.flush()
        return instance
