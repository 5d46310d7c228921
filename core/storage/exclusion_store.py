"""
ExclusionStore - Projection 제외 월 저장소

사용자가 명시적으로 삭제한 (template, month) 기록.
Projection 생성 시 조회만 하고 변경하지 않음.
"""

import logging
from datetime import date

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.utils.dates import month_start

logger = logging.getLogger(__name__)


class ExclusionStore:
    """Projection 제외 월 저장소

    월은 항상 1일로 정규화해서 저장/조회.

    Args:
        db: SQLiteAdapter 인스턴스
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    async def add(self, workspace_id: int, template_id: int, month: date) -> bool:
        """제외 월 기록 (이미 있으면 무시)

        Returns:
            True: 신규 기록
            False: 이미 존재
        """
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                INSERT INTO projection_exclusions (workspace_id, template_id, excluded_month)
                VALUES (?, ?, ?)
                ON CONFLICT (workspace_id, template_id, excluded_month) DO NOTHING
                """,
                (workspace_id, template_id, month_start(month).isoformat()),
            )
        return cursor.rowcount > 0

    async def is_excluded(self, workspace_id: int, template_id: int, month: date) -> bool:
        """해당 월이 제외됐는지 여부"""
        row = await self.db.fetchone(
            """
            SELECT 1 FROM projection_exclusions
            WHERE workspace_id = ? AND template_id = ? AND excluded_month = ?
            """,
            (workspace_id, template_id, month_start(month).isoformat()),
        )
        return row is not None

    async def remove(self, workspace_id: int, template_id: int, month: date) -> bool:
        """제외 해제

        Returns:
            삭제 여부
        """
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                DELETE FROM projection_exclusions
                WHERE workspace_id = ? AND template_id = ? AND excluded_month = ?
                """,
                (workspace_id, template_id, month_start(month).isoformat()),
            )
        return cursor.rowcount > 0

    async def list_for_template(self, workspace_id: int, template_id: int) -> list[date]:
        rows = await self.db.fetchall(
            """
            SELECT excluded_month FROM projection_exclusions
            WHERE workspace_id = ? AND template_id = ?
            ORDER BY excluded_month
            """,
            (workspace_id, template_id),
        )
        return [date.fromisoformat(row[0]) for row in rows]
