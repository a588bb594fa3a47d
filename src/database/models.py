"""
Modelos de Base de Datos

Tablas de donde el núcleo lee los datos de benchmark:
- data_sources: Fuentes de datos administradas (soft delete)
- metric_inputs: Campos de entrada de cada métrica por periodo
- benchmark_data: Población de benchmark de cada métrica
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime,
    ForeignKey, Float, Index
)
from sqlalchemy.types import TypeDecorator, VARCHAR
from sqlalchemy.orm import relationship
from datetime import datetime
from typing import Any
import json

from src.database.connection import Base
from src.database.mixins import SoftDeleteMixin, TimestampMixin, UUIDMixin


class JSONType(TypeDecorator):
    """Tipo JSON compatible con SQLite y PostgreSQL"""
    impl = VARCHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            from sqlalchemy.dialects.postgresql import JSONB
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(VARCHAR(10000))

    def process_bind_param(self, value, dialect):
        if value is not None:
            if dialect.name != 'postgresql':
                return json.dumps(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            if isinstance(value, str):
                return json.loads(value)
        return value


class DataSource(Base, UUIDMixin, TimestampMixin, SoftDeleteMixin):
    """
    Fuente de datos de benchmark.

    La administran sistemas externos; el núcleo solo lee las activas.
    """
    __tablename__ = "data_sources"

    name = Column(String(100), nullable=False, unique=True)
    active = Column(Boolean, default=True, nullable=False)

    # Configuración de la fuente (proveedor, frecuencia, etc.)
    config: Any = Column(JSONType(), default=dict, nullable=False)

    inputs = relationship("MetricInput", back_populates="source", cascade="all, delete-orphan")
    benchmarks = relationship("BenchmarkDataPoint", back_populates="source", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<DataSource {self.name} active={self.active}>"


class MetricInput(Base):
    """
    Valor de un campo de entrada (currentARR, churn, ...) para una métrica.

    Para cada campo se usa el periodo más reciente.
    """
    __tablename__ = "metric_inputs"

    id = Column(Integer, primary_key=True, index=True)
    metric_id = Column(String(50), nullable=False, index=True)
    source_id = Column(
        String(36),
        ForeignKey("data_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    field_name = Column(String(50), nullable=False)
    value = Column(Float, nullable=False)
    period = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    source = relationship("DataSource", back_populates="inputs")

    __table_args__ = (
        Index('ix_inputs_metric_field_period', 'metric_id', 'field_name', 'period'),
    )

    def __repr__(self):
        return f"<MetricInput {self.metric_id}.{self.field_name}={self.value}>"


class BenchmarkDataPoint(Base):
    """Un punto de la población de benchmark de una métrica."""
    __tablename__ = "benchmark_data"

    id = Column(Integer, primary_key=True, index=True)
    metric_id = Column(String(50), nullable=False, index=True)
    source_id = Column(
        String(36),
        ForeignKey("data_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    value = Column(Float, nullable=False)
    # Segmento de ARR (ej: "1M-5M")
    arr_range = Column(String(20), nullable=True)
    period = Column(DateTime, default=datetime.utcnow, nullable=False)

    source = relationship("DataSource", back_populates="benchmarks")

    __table_args__ = (
        Index('ix_benchmark_metric_range', 'metric_id', 'arr_range'),
    )

    def __repr__(self):
        return f"<BenchmarkDataPoint {self.metric_id}={self.value}>"
