"""
PERSISTENCE MODULE

Components:
- store: RecordStore and ContextAdmin protocols, best-effort writes, in-memory store
- sql_store: SQLAlchemy async store (also a ContextProvider)
- trace_persister: one trace per run plus limits and improvements
"""
from pulse_omega.persistence.store import (
    ContextAdmin,
    InMemoryRecordStore,
    RecordStore,
    TraceRecord,
    best_effort_write,
)

__all__ = [
    'ContextAdmin',
    'InMemoryRecordStore',
    'RecordStore',
    'TraceRecord',
    'best_effort_write',
]
