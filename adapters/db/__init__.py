"""
데이터베이스 어댑터

SQLite WAL 모드 연결 관리 및 원장 스키마 초기화.
"""

from adapters.db.sqlite_adapter import (
    SQLiteAdapter,
    create_connection,
    init_schema,
)

__all__ = [
    "SQLiteAdapter",
    "create_connection",
    "init_schema",
]
