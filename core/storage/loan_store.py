"""
LoanStore - 대출 저장소

loans 테이블 CRUD. 삭제는 soft delete (deleted_at).
"""

import logging
from datetime import datetime

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.models import Loan

logger = logging.getLogger(__name__)


class LoanStore:
    """대출 저장소

    Args:
        db: SQLiteAdapter 인스턴스
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    async def insert(self, loan: Loan) -> Loan:
        """대출 행 생성

        스케줄 항목과 함께 바깥 트랜잭션 안에서 호출됨.
        """
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                INSERT INTO loans (
                    workspace_id, provider_id, item_name, total_amount, num_months,
                    purchase_date, interest_rate, monthly_payment,
                    first_payment_year, first_payment_month,
                    account_id, settlement_intent, notes
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    loan.workspace_id,
                    loan.provider_id,
                    loan.item_name,
                    str(loan.total_amount),
                    loan.num_months,
                    loan.purchase_date.isoformat(),
                    str(loan.interest_rate),
                    str(loan.monthly_payment),
                    loan.first_payment_year,
                    loan.first_payment_month,
                    loan.account_id,
                    loan.settlement_intent.value if loan.settlement_intent else None,
                    loan.notes,
                ),
            )
        loan.id = cursor.lastrowid
        return loan

    async def get(self, workspace_id: int, loan_id: int) -> Loan | None:
        """대출 조회 (삭제됐거나 다른 workspace면 None)"""
        row = await self.db.fetchone_dict(
            "SELECT * FROM loans WHERE id = ? AND workspace_id = ? AND deleted_at IS NULL",
            (loan_id, workspace_id),
        )
        return Loan.from_row(row) if row else None

    async def list_by_workspace(self, workspace_id: int) -> list[Loan]:
        rows = await self.db.fetchall_dicts(
            """
            SELECT * FROM loans WHERE workspace_id = ? AND deleted_at IS NULL
            ORDER BY purchase_date DESC, id DESC
            """,
            (workspace_id,),
        )
        return [Loan.from_row(row) for row in rows]

    async def update_details(self, loan: Loan) -> int:
        """이름/메모/제공자 갱신 (금액/기간/스케줄은 불변)"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                UPDATE loans
                SET item_name = ?, notes = ?, provider_id = ?, updated_at = datetime('now')
                WHERE id = ? AND workspace_id = ? AND deleted_at IS NULL
                """,
                (loan.item_name, loan.notes, loan.provider_id, loan.id, loan.workspace_id),
            )
        return cursor.rowcount

    async def soft_delete(self, workspace_id: int, loan_id: int, deleted_at: datetime) -> int:
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                UPDATE loans SET deleted_at = ?, updated_at = datetime('now')
                WHERE id = ? AND workspace_id = ? AND deleted_at IS NULL
                """,
                (deleted_at.isoformat(), loan_id, workspace_id),
            )
        return cursor.rowcount
