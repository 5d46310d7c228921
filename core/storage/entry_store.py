"""
EntryStore - 원장 항목 저장소

entries 테이블 CRUD 및 일괄 상태 전이.
모든 쿼리는 workspace_id로 범위 제한.

쓰기 메서드는 self.db.transaction() 안에서 실행되므로
서비스가 바깥 트랜잭션을 열면 그 트랜잭션에 참여함.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.errors import SettlementAtomicityError
from core.domain.models import CreditCardData, LedgerEntry
from core.types import CCState, EntryType, SettlementIntent

logger = logging.getLogger(__name__)


ENTRY_COLUMNS = (
    "workspace_id", "account_id", "category_id", "name", "amount",
    "entry_type", "entry_date", "is_paid", "source",
    "template_id", "loan_id", "is_projected",
    "cc_state", "settlement_intent", "billed_at",
    "transfer_pair_id", "is_cc_payment", "notes",
)

_INSERT_SQL = (
    f"INSERT INTO entries ({', '.join(ENTRY_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in ENTRY_COLUMNS)})"
)

_SELECT_SQL = "SELECT * FROM entries WHERE workspace_id = ? AND deleted_at IS NULL"

# 카드 계좌 항목만 (accounts 조인)
_CARD_SELECT_SQL = """
    SELECT e.* FROM entries e
    JOIN accounts a ON a.id = e.account_id
    WHERE e.workspace_id = ? AND e.deleted_at IS NULL
      AND a.template = 'credit_card'
"""


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _cc_params(cc: CreditCardData | None) -> tuple[Any, Any, Any]:
    if cc is None:
        return None, None, None
    return cc.state.value, cc.intent.value, _iso(cc.billed_at)


def _placeholders(values: list[Any]) -> str:
    return ", ".join("?" for _ in values)


def entry_params(entry: LedgerEntry) -> tuple[Any, ...]:
    """INSERT 파라미터 (ENTRY_COLUMNS 순서)"""
    cc_state, intent, billed_at = _cc_params(entry.cc)
    return (
        entry.workspace_id,
        entry.account_id,
        entry.category_id,
        entry.name,
        str(entry.amount),
        entry.entry_type.value,
        entry.entry_date.isoformat(),
        int(entry.is_paid),
        entry.source.value,
        entry.template_id,
        entry.loan_id,
        int(entry.is_projected),
        cc_state,
        intent,
        billed_at,
        entry.transfer_pair_id,
        int(entry.is_cc_payment),
        entry.notes,
    )


class EntryStore:
    """원장 항목 저장소

    Args:
        db: SQLiteAdapter 인스턴스

    사용 예시:
    ```python
    store = EntryStore(db)

    created = await store.insert(entry)
    entries = await store.get_by_ids(workspace_id, [1, 2, 3])
    ```
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    # -------------------------------------------------------------------------
    # 생성
    # -------------------------------------------------------------------------

    async def insert(self, entry: LedgerEntry) -> LedgerEntry:
        """항목 1건 생성

        Returns:
            id가 채워진 LedgerEntry
        """
        async with self.db.transaction():
            cursor = await self.db.execute(_INSERT_SQL, entry_params(entry))
        entry.id = cursor.lastrowid
        return entry

    async def insert_many(self, entries: list[LedgerEntry]) -> list[LedgerEntry]:
        """여러 항목을 한 트랜잭션으로 생성"""
        async with self.db.transaction():
            for entry in entries:
                cursor = await self.db.execute(_INSERT_SQL, entry_params(entry))
                entry.id = cursor.lastrowid
        return entries

    async def insert_projection(self, entry: LedgerEntry) -> LedgerEntry | None:
        """Projection 항목 생성 (중복이면 무시)

        (workspace, template, 월) 유니크 인덱스에 걸리면 삽입하지 않음.

        Returns:
            생성된 항목 또는 None (중복)
        """
        async with self.db.transaction():
            cursor = await self.db.execute(
                _INSERT_SQL + " ON CONFLICT DO NOTHING",
                entry_params(entry),
            )
        if cursor.rowcount == 0:
            return None
        entry.id = cursor.lastrowid
        return entry

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    async def get(self, workspace_id: int, entry_id: int) -> LedgerEntry | None:
        """항목 조회 (다른 workspace면 None)"""
        row = await self.db.fetchone_dict(
            f"{_SELECT_SQL} AND id = ?",
            (workspace_id, entry_id),
        )
        return LedgerEntry.from_row(row) if row else None

    async def get_by_ids(self, workspace_id: int, entry_ids: list[int]) -> list[LedgerEntry]:
        """ID 목록으로 조회 (workspace에 없는 ID는 결과에서 빠짐)"""
        ids = sorted(set(entry_ids))
        if not ids:
            return []
        rows = await self.db.fetchall_dicts(
            f"{_SELECT_SQL} AND id IN ({_placeholders(ids)}) ORDER BY id",
            (workspace_id, *ids),
        )
        return [LedgerEntry.from_row(row) for row in rows]

    async def list_by_template(
        self,
        workspace_id: int,
        template_id: int,
        projected_only: bool = False,
    ) -> list[LedgerEntry]:
        """템플릿에 연결된 항목 (날짜순)"""
        sql = f"{_SELECT_SQL} AND template_id = ?"
        if projected_only:
            sql += " AND is_projected = 1"
        rows = await self.db.fetchall_dicts(
            sql + " ORDER BY entry_date, id",
            (workspace_id, template_id),
        )
        return [LedgerEntry.from_row(row) for row in rows]

    async def list_by_loan(self, workspace_id: int, loan_id: int) -> list[LedgerEntry]:
        """대출에 연결된 항목 (날짜순)"""
        rows = await self.db.fetchall_dicts(
            f"{_SELECT_SQL} AND loan_id = ? ORDER BY entry_date, id",
            (workspace_id, loan_id),
        )
        return [LedgerEntry.from_row(row) for row in rows]

    async def exists_for_month(self, workspace_id: int, template_id: int, month: str) -> bool:
        """템플릿의 해당 월(YYYY-MM) 항목 존재 여부"""
        row = await self.db.fetchone(
            """
            SELECT 1 FROM entries
            WHERE workspace_id = ? AND template_id = ? AND deleted_at IS NULL
              AND substr(entry_date, 1, 7) = ?
            LIMIT 1
            """,
            (workspace_id, template_id, month),
        )
        return row is not None

    async def list_unpaid_for_loan_month(
        self,
        workspace_id: int,
        loan_id: int,
        year: int,
        month: int,
    ) -> list[LedgerEntry]:
        """대출의 해당 월 미납 항목"""
        rows = await self.db.fetchall_dicts(
            f"""{_SELECT_SQL} AND loan_id = ? AND is_paid = 0
                AND substr(entry_date, 1, 7) = ? ORDER BY id""",
            (workspace_id, loan_id, f"{year:04d}-{month:02d}"),
        )
        return [LedgerEntry.from_row(row) for row in rows]

    async def list_loan_linked(self, workspace_id: int) -> list[LedgerEntry]:
        """대출에 연결된 모든 항목 (대출별, 날짜순)"""
        rows = await self.db.fetchall_dicts(
            f"{_SELECT_SQL} AND loan_id IS NOT NULL ORDER BY loan_id, entry_date, id",
            (workspace_id,),
        )
        return [LedgerEntry.from_row(row) for row in rows]

    async def list_loan_linked_for_month(
        self,
        workspace_id: int,
        year: int,
        month: int,
    ) -> list[LedgerEntry]:
        """해당 월의 대출 항목 (지급 여부 무관)"""
        rows = await self.db.fetchall_dicts(
            f"""{_SELECT_SQL} AND loan_id IS NOT NULL
                AND substr(entry_date, 1, 7) = ? ORDER BY name, id""",
            (workspace_id, f"{year:04d}-{month:02d}"),
        )
        return [LedgerEntry.from_row(row) for row in rows]

    async def list_card_expenses(
        self,
        workspace_id: int,
        start: date | None = None,
        end: date | None = None,
    ) -> list[LedgerEntry]:
        """카드 계좌 지출 항목 (기간 필터 선택, 양 끝 포함)"""
        sql = _CARD_SELECT_SQL + " AND e.entry_type = ?"
        params: list[Any] = [workspace_id, EntryType.EXPENSE.value]
        if start is not None:
            sql += " AND e.entry_date >= ?"
            params.append(start.isoformat())
        if end is not None:
            sql += " AND e.entry_date <= ?"
            params.append(end.isoformat())
        rows = await self.db.fetchall_dicts(sql + " ORDER BY e.entry_date, e.id", params)
        return [LedgerEntry.from_row(row) for row in rows]

    async def list_billed_unpaid(
        self,
        workspace_id: int,
        intent: SettlementIntent | None = None,
        billed_before: datetime | None = None,
    ) -> list[LedgerEntry]:
        """청구됨/미납 카드 항목

        Args:
            intent: 정산 의도 필터
            billed_before: 이 시각 이전에 청구된 항목만 (연체 조회용)
        """
        sql = f"{_SELECT_SQL} AND cc_state = ? AND is_paid = 0"
        params: list[Any] = [workspace_id, CCState.BILLED.value]
        if intent is not None:
            sql += " AND settlement_intent = ?"
            params.append(intent.value)
        if billed_before is not None:
            sql += " AND billed_at < ?"
            params.append(billed_before.isoformat())
        rows = await self.db.fetchall_dicts(sql + " ORDER BY entry_date, id", params)
        return [LedgerEntry.from_row(row) for row in rows]

    # -------------------------------------------------------------------------
    # 수정
    # -------------------------------------------------------------------------

    async def update_core_fields(self, entry: LedgerEntry) -> None:
        """이름/금액/카테고리/계좌/CC 데이터 갱신 (지급 여부는 건드리지 않음)"""
        cc_state, intent, billed_at = _cc_params(entry.cc)
        async with self.db.transaction():
            await self.db.execute(
                """
                UPDATE entries
                SET name = ?, amount = ?, category_id = ?, account_id = ?,
                    cc_state = ?, settlement_intent = ?, billed_at = ?,
                    updated_at = datetime('now')
                WHERE id = ? AND workspace_id = ?
                """,
                (
                    entry.name,
                    str(entry.amount),
                    entry.category_id,
                    entry.account_id,
                    cc_state,
                    intent,
                    billed_at,
                    entry.id,
                    entry.workspace_id,
                ),
            )

    async def update_cc(
        self,
        workspace_id: int,
        entry_id: int,
        cc: CreditCardData,
        expected_state: CCState | None = None,
    ) -> int:
        """CC 데이터만 갱신

        Args:
            expected_state: 지정하면 현재 cc_state가 이 값일 때만 갱신

        Returns:
            영향받은 행 수 (상태가 이미 바뀌었으면 0)
        """
        cc_state, intent, billed_at = _cc_params(cc)
        sql = """
            UPDATE entries
            SET cc_state = ?, settlement_intent = ?, billed_at = ?,
                updated_at = datetime('now')
            WHERE id = ? AND workspace_id = ? AND deleted_at IS NULL
        """
        params: list[Any] = [cc_state, intent, billed_at, entry_id, workspace_id]
        if expected_state is not None:
            sql += " AND cc_state = ?"
            params.append(CCState(expected_state).value)

        async with self.db.transaction():
            cursor = await self.db.execute(sql, params)
        return cursor.rowcount

    async def update_amount(self, workspace_id: int, entry_id: int, amount: Decimal) -> int:
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                UPDATE entries SET amount = ?, updated_at = datetime('now')
                WHERE id = ? AND workspace_id = ? AND deleted_at IS NULL
                """,
                (str(amount), entry_id, workspace_id),
            )
        return cursor.rowcount

    async def rename_unpaid_by_loan(self, workspace_id: int, loan_id: int, name: str) -> int:
        """대출의 미납 항목 이름 변경"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                UPDATE entries SET name = ?, updated_at = datetime('now')
                WHERE workspace_id = ? AND loan_id = ? AND is_paid = 0 AND deleted_at IS NULL
                """,
                (name, workspace_id, loan_id),
            )
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # 일괄 상태 전이
    # -------------------------------------------------------------------------

    async def mark_billed(
        self,
        workspace_id: int,
        entry_ids: list[int],
        billed_at: datetime,
    ) -> list[LedgerEntry]:
        """PENDING 카드 항목을 BILLED로 일괄 전이

        workspace 밖이거나 PENDING이 아닌 ID는 조용히 건너뜀.

        Returns:
            전이된 항목 목록
        """
        ids = sorted(set(entry_ids))
        if not ids:
            return []

        async with self.db.transaction():
            rows = await self.db.fetchall(
                f"""
                SELECT id FROM entries
                WHERE workspace_id = ? AND deleted_at IS NULL
                  AND cc_state = ? AND is_paid = 0
                  AND id IN ({_placeholders(ids)})
                """,
                (workspace_id, CCState.PENDING.value, *ids),
            )
            eligible = [row[0] for row in rows]
            if not eligible:
                return []

            await self.db.execute(
                f"""
                UPDATE entries
                SET cc_state = ?, billed_at = ?, updated_at = datetime('now')
                WHERE workspace_id = ? AND cc_state = ?
                  AND id IN ({_placeholders(eligible)})
                """,
                (
                    CCState.BILLED.value,
                    billed_at.isoformat(),
                    workspace_id,
                    CCState.PENDING.value,
                    *eligible,
                ),
            )
            return await self.get_by_ids(workspace_id, eligible)

    async def mark_paid(self, workspace_id: int, entry_ids: list[int], paid_at: datetime) -> int:
        """미납 항목을 지급 완료로 일괄 전이

        카드 항목은 SETTLED로 전이 (billed_at이 없으면 paid_at으로 채움).

        Returns:
            영향받은 행 수
        """
        ids = sorted(set(entry_ids))
        if not ids:
            return 0

        async with self.db.transaction():
            cursor = await self.db.execute(
                f"""
                UPDATE entries
                SET is_paid = 1,
                    cc_state = CASE WHEN cc_state IS NULL THEN NULL ELSE ? END,
                    billed_at = CASE WHEN cc_state IS NULL THEN NULL
                                     ELSE COALESCE(billed_at, ?) END,
                    updated_at = datetime('now')
                WHERE workspace_id = ? AND is_paid = 0 AND deleted_at IS NULL
                  AND id IN ({_placeholders(ids)})
                """,
                (CCState.SETTLED.value, paid_at.isoformat(), workspace_id, *ids),
            )
        return cursor.rowcount

    async def settle(
        self,
        workspace_id: int,
        transfer: LedgerEntry,
        entry_ids: list[int],
    ) -> LedgerEntry:
        """이체 항목 생성 + BILLED/DEFERRED 항목 SETTLED 전이 (단일 트랜잭션)

        전이된 행 수가 요청 수와 다르면 트랜잭션 전체 롤백.

        Returns:
            생성된 이체 항목

        Raises:
            SettlementAtomicityError: 일부 항목만 전이된 경우
        """
        ids = sorted(set(entry_ids))

        async with self.db.transaction():
            cursor = await self.db.execute(_INSERT_SQL, entry_params(transfer))
            transfer.id = cursor.lastrowid

            cursor = await self.db.execute(
                f"""
                UPDATE entries
                SET cc_state = ?, is_paid = 1, updated_at = datetime('now')
                WHERE workspace_id = ? AND deleted_at IS NULL
                  AND cc_state = ? AND settlement_intent = ? AND is_paid = 0
                  AND id IN ({_placeholders(ids)})
                """,
                (
                    CCState.SETTLED.value,
                    workspace_id,
                    CCState.BILLED.value,
                    SettlementIntent.DEFERRED.value,
                    *ids,
                ),
            )

            if cursor.rowcount != len(ids):
                logger.error(
                    "정산 원자성 위반: 전이 행 수 불일치",
                    extra={
                        "workspace_id": workspace_id,
                        "requested": len(ids),
                        "affected": cursor.rowcount,
                    },
                )
                raise SettlementAtomicityError()

        return transfer

    # -------------------------------------------------------------------------
    # 삭제 / 연결 해제
    # -------------------------------------------------------------------------

    async def delete(self, workspace_id: int, entry_id: int) -> bool:
        """항목 삭제 (hard delete)"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                "DELETE FROM entries WHERE id = ? AND workspace_id = ?",
                (entry_id, workspace_id),
            )
        return cursor.rowcount > 0

    async def delete_projected_by_template(self, workspace_id: int, template_id: int) -> int:
        """템플릿의 projection 항목 삭제"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                "DELETE FROM entries WHERE workspace_id = ? AND template_id = ? AND is_projected = 1",
                (workspace_id, template_id),
            )
        return cursor.rowcount

    async def delete_projected_after(
        self,
        workspace_id: int,
        template_id: int,
        end_date: date,
    ) -> int:
        """종료일 이후의 미납 projection 항목 삭제"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                DELETE FROM entries
                WHERE workspace_id = ? AND template_id = ? AND is_projected = 1
                  AND is_paid = 0 AND entry_date > ?
                """,
                (workspace_id, template_id, end_date.isoformat()),
            )
        return cursor.rowcount

    async def orphan_by_template(self, workspace_id: int, template_id: int) -> int:
        """템플릿의 실제(비-projection) 항목 연결 해제"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                UPDATE entries SET template_id = NULL, updated_at = datetime('now')
                WHERE workspace_id = ? AND template_id = ? AND is_projected = 0
                """,
                (workspace_id, template_id),
            )
        return cursor.rowcount

    async def link_to_template(self, workspace_id: int, entry_id: int, template_id: int) -> int:
        """기존 항목을 템플릿에 연결"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                UPDATE entries SET template_id = ?, updated_at = datetime('now')
                WHERE id = ? AND workspace_id = ? AND loan_id IS NULL AND deleted_at IS NULL
                """,
                (template_id, entry_id, workspace_id),
            )
        return cursor.rowcount

    async def orphan_paid_by_loan(self, workspace_id: int, loan_id: int) -> int:
        """대출의 지급 완료 항목 연결 해제 (이력 보존)"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                UPDATE entries SET loan_id = NULL, updated_at = datetime('now')
                WHERE workspace_id = ? AND loan_id = ? AND is_paid = 1
                """,
                (workspace_id, loan_id),
            )
        return cursor.rowcount

    async def delete_unpaid_by_loan(self, workspace_id: int, loan_id: int) -> int:
        """대출의 미납 항목 삭제"""
        async with self.db.transaction():
            cursor = await self.db.execute(
                "DELETE FROM entries WHERE workspace_id = ? AND loan_id = ? AND is_paid = 0",
                (workspace_id, loan_id),
            )
        return cursor.rowcount


def sum_amounts(entries: Iterable[LedgerEntry]) -> Decimal:
    """항목 금액 합계"""
    return sum((entry.amount for entry in entries), Decimal("0"))
