"""
Database Mixins

Mixins reutilizables para modelos de base de datos:
- SoftDeleteMixin: Eliminación lógica de fuentes de datos
- TimestampMixin: Timestamps automáticos
- UUIDMixin: IDs UUID
"""

from sqlalchemy import Column, DateTime, Boolean, String
from sqlalchemy.orm import Mapped, declared_attr
from datetime import datetime
from typing import Optional
import uuid


class SoftDeleteMixin:
    """
    Mixin para eliminación lógica (soft delete).

    Una fuente eliminada deja de aportar datos pero conserva su historial.
    """
    deleted_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True, index=True)
    is_deleted: Mapped[bool] = Column(Boolean, default=False, index=True, nullable=False)

    def soft_delete(self) -> None:
        """Marca el registro como eliminado"""
        self.deleted_at = datetime.utcnow()
        self.is_deleted = True

    def restore(self) -> None:
        """Restaura un registro eliminado"""
        self.deleted_at = None
        self.is_deleted = False

    @classmethod
    def not_deleted(cls):
        """Filtro para obtener solo registros no eliminados"""
        return cls.is_deleted == False  # noqa: E712


class TimestampMixin:
    """
    Mixin para timestamps automáticos.

    Agrega created_at y updated_at a los modelos.
    """
    created_at: Mapped[datetime] = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True
    )
    updated_at: Mapped[datetime] = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )


class UUIDMixin:
    """
    Mixin para IDs UUID.

    Usa UUID como primary key en lugar de auto-increment.
    """
    @declared_attr
    def id(cls) -> Mapped[str]:
        return Column(
            String(36),
            primary_key=True,
            default=generate_uuid,
            index=True
        )


def generate_uuid() -> str:
    """Genera un UUID como string"""
    return str(uuid.uuid4())
