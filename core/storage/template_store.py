"""
TemplateStore - 반복 템플릿 저장소

recurring_templates 테이블 CRUD.
"""

import logging

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.models import RecurringTemplate

logger = logging.getLogger(__name__)


class TemplateStore:
    """반복 템플릿 저장소

    Args:
        db: SQLiteAdapter 인스턴스
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    async def insert(self, template: RecurringTemplate) -> RecurringTemplate:
        """템플릿 생성

        Returns:
            id가 채워진 RecurringTemplate
        """
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                INSERT INTO recurring_templates (
                    workspace_id, description, amount, category_id, account_id,
                    frequency, start_date, end_date, settlement_intent, is_active
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    template.workspace_id,
                    template.description,
                    str(template.amount),
                    template.category_id,
                    template.account_id,
                    template.frequency.value,
                    template.start_date.isoformat(),
                    template.end_date.isoformat() if template.end_date else None,
                    template.settlement_intent.value if template.settlement_intent else None,
                    int(template.is_active),
                ),
            )
        template.id = cursor.lastrowid
        return template

    async def get(self, workspace_id: int, template_id: int) -> RecurringTemplate | None:
        """템플릿 조회 (다른 workspace면 None)"""
        row = await self.db.fetchone_dict(
            "SELECT * FROM recurring_templates WHERE id = ? AND workspace_id = ?",
            (template_id, workspace_id),
        )
        return RecurringTemplate.from_row(row) if row else None

    async def list_by_workspace(self, workspace_id: int) -> list[RecurringTemplate]:
        rows = await self.db.fetchall_dicts(
            "SELECT * FROM recurring_templates WHERE workspace_id = ? ORDER BY id",
            (workspace_id,),
        )
        return [RecurringTemplate.from_row(row) for row in rows]

    async def list_active(self) -> list[RecurringTemplate]:
        """전체 workspace의 활성 템플릿 (일일 동기화용)"""
        rows = await self.db.fetchall_dicts(
            "SELECT * FROM recurring_templates WHERE is_active = 1 ORDER BY workspace_id, id",
        )
        return [RecurringTemplate.from_row(row) for row in rows]

    async def update(self, template: RecurringTemplate) -> int:
        """템플릿 갱신

        Returns:
            영향받은 행 수
        """
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                UPDATE recurring_templates
                SET description = ?, amount = ?, category_id = ?, account_id = ?,
                    frequency = ?, start_date = ?, end_date = ?,
                    settlement_intent = ?, is_active = ?,
                    updated_at = datetime('now')
                WHERE id = ? AND workspace_id = ?
                """,
                (
                    template.description,
                    str(template.amount),
                    template.category_id,
                    template.account_id,
                    template.frequency.value,
                    template.start_date.isoformat(),
                    template.end_date.isoformat() if template.end_date else None,
                    template.settlement_intent.value if template.settlement_intent else None,
                    int(template.is_active),
                    template.id,
                    template.workspace_id,
                ),
            )
        return cursor.rowcount

    async def delete(self, workspace_id: int, template_id: int) -> bool:
        async with self.db.transaction():
            cursor = await self.db.execute(
                "DELETE FROM recurring_templates WHERE id = ? AND workspace_id = ?",
                (template_id, workspace_id),
            )
        return cursor.rowcount > 0
