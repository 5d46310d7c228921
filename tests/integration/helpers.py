"""
통합 테스트 헬퍼

기준 시각, workspace ID, 기본 데이터 묶음, 조회 헬퍼.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.models import Account, Category, LoanProvider

# 테스트 기준 시각
NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

WORKSPACE_ID = 1
OTHER_WORKSPACE_ID = 2


@dataclass
class Seed:
    """workspace 1개의 기본 데이터"""

    workspace_id: int
    bank: Account
    card: Account
    category: Category
    provider: LoanProvider


async def count_rows(db: SQLiteAdapter, sql: str, params: tuple = ()) -> int:
    """COUNT(*) 헬퍼"""
    row = await db.fetchone(sql, params)
    return row[0] if row else 0
