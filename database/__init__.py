"""
Database Package for Model Vitals

This package contains the result store:
- ORM model for persisted probe results
- Async engine/session management and read-side repository
- Append-only result writer
"""

from database.models import Base, MonitoringResult
from database.manager import DatabaseManager, ResultRepository
from database.store import ResultStore

__all__ = [
    "Base",
    "MonitoringResult",
    "DatabaseManager",
    "ResultRepository",
    "ResultStore"
]
