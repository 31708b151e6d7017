"""
Persistence for TraceWipe: a SQLAlchemy key-value table for durable data
and the :class:`Storage` helper the engine reads and writes through.
"""

from .helpers import Storage
from .sql_store import SqlKeyValueStore, create_store_engine

__all__ = [
    'Storage',
    'SqlKeyValueStore',
    'create_store_engine',
]
