"""
============================================================================
MODEL VITALS - DATABASE MODELS
============================================================================
SQLAlchemy ORM model for the append-only probe result log.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from datetime import datetime, timezone
from typing import Dict, Any

from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Text, Index, func
)
from sqlalchemy.orm import declarative_base


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()

# SQLite only auto-increments INTEGER PRIMARY KEY columns
PrimaryKeyType = BigInteger().with_variant(Integer, "sqlite")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# MONITORING RESULT MODEL
# ============================================================================

class MonitoringResult(Base):
    """
    One row per terminal probe outcome.

    Rows are only ever inserted. ``series_id`` is deliberately not unique:
    a retried write may leave a duplicate row for the same execution.
    """
    __tablename__ = "monitoring_results"

    # Primary Key
    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)

    # When the probe finished
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utc_now)

    # Probe identity
    monitor_name = Column(String(255), nullable=False)
    endpoint_url = Column(Text, nullable=False)
    model_name = Column(String(255), nullable=False)

    # Outcome
    state = Column(String(20), nullable=False)
    status_code = Column(Integer, nullable=True)
    message = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    # Execution
    series_id = Column(String(255), nullable=False)
    environment = Column(String(50), nullable=False)

    # Metadata
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
        server_default=func.now()
    )

    # Indexes
    __table_args__ = (
        Index("idx_monitoring_results_timestamp", "timestamp"),
        Index("idx_monitoring_results_monitor_name", "monitor_name"),
        Index("idx_monitoring_results_series_id", "series_id"),
        Index("idx_monitoring_results_state", "state"),
        Index("idx_monitoring_results_monitor_timestamp", "monitor_name", "timestamp"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "monitor_name": self.monitor_name,
            "endpoint_url": self.endpoint_url,
            "model_name": self.model_name,
            "state": self.state,
            "status_code": self.status_code,
            "message": self.message,
            "duration_ms": self.duration_ms,
            "series_id": self.series_id,
            "environment": self.environment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<MonitoringResult(id={self.id}, monitor={self.monitor_name}, "
            f"state={self.state}, series={self.series_id})>"
        )
