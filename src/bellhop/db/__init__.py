"""Database layer."""

from bellhop.db.engine import Database
from bellhop.db.models import Base, ExecutionLogRecord, JobRecord, UTCDateTime

__all__ = [
    # Engine
    "Database",
    # Models
    "Base",
    "ExecutionLogRecord",
    "JobRecord",
    "UTCDateTime",
]
