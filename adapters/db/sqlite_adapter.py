"""
SQLite 어댑터

WAL 모드로 SQLite 연결 관리.
Worker와 요청 처리 프로세스가 동시에 접근 가능하도록 설정.

주의: SQLite alias로 time, count 사용 금지 (예약어)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

logger = logging.getLogger(__name__)


async def create_connection(
    db_path: Path | str,
    readonly: bool = False,
) -> aiosqlite.Connection:
    """SQLite 연결 생성 (WAL 모드)

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부

    Returns:
        aiosqlite 연결 객체
    """
    db_path_str = str(db_path)

    # 디렉토리가 없으면 생성
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    if readonly:
        conn = await aiosqlite.connect(
            f"file:{db_path_str}?mode=ro", uri=True, isolation_level=None
        )
    else:
        # 트랜잭션은 transaction()에서 명시적으로 시작 (autocommit)
        conn = await aiosqlite.connect(db_path_str, isolation_level=None)

    # WAL 모드 설정
    await conn.execute("PRAGMA journal_mode=WAL")

    # 동시 접근 설정
    await conn.execute("PRAGMA busy_timeout=30000")  # 30초 대기

    # 외래 키 제약 활성화
    await conn.execute("PRAGMA foreign_keys=ON")

    logger.info(
        "SQLite 연결 생성",
        extra={"db_path": db_path_str, "readonly": readonly},
    )

    return conn


def _rows_to_dicts(cursor: aiosqlite.Cursor, rows: Any) -> list[dict[str, Any]]:
    columns = [desc[0] for desc in cursor.description or ()]
    return [dict(zip(columns, row)) for row in rows]


class SQLiteAdapter:
    """SQLite 어댑터

    WAL 모드로 SQLite 연결 관리.
    트랜잭션 컨텍스트 매니저 제공 (최상위 트랜잭션 직렬화, 중첩은 SAVEPOINT).

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부

    사용 예시:
    ```python
    adapter = SQLiteAdapter(db_path)
    await adapter.connect()

    async with adapter.transaction() as conn:
        await conn.execute("INSERT INTO ...")

    await adapter.close()
    ```
    """

    def __init__(self, db_path: Path | str, readonly: bool = False):
        self.db_path = Path(db_path)
        self.readonly = readonly
        self._conn: aiosqlite.Connection | None = None
        self._tx_lock = asyncio.Lock()
        # 태스크별 transaction() 중첩 깊이
        self._tx_depth: ContextVar[int] = ContextVar(f"sqlite_tx_depth_{id(self)}", default=0)

    @property
    def is_connected(self) -> bool:
        """연결 상태 확인"""
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        """현재 태스크가 transaction() 블록 내부인지"""
        return self._tx_depth.get() > 0

    async def connect(self) -> None:
        """연결 생성"""
        if self._conn is not None:
            return

        self._conn = await create_connection(self.db_path, self.readonly)

    async def close(self) -> None:
        """연결 종료"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite 연결 종료")

    async def execute(
        self,
        sql: str,
        parameters: tuple[Any, ...] | list[Any] | None = None,
    ) -> aiosqlite.Cursor:
        """SQL 실행"""
        if self._conn is None:
            raise RuntimeError("Not connected to database")

        if parameters:
            return await self._conn.execute(sql, tuple(parameters))
        return await self._conn.execute(sql)

    async def executemany(
        self,
        sql: str,
        parameters: list[tuple[Any, ...]],
    ) -> aiosqlite.Cursor:
        """SQL 다중 실행"""
        if self._conn is None:
            raise RuntimeError("Not connected to database")

        return await self._conn.executemany(sql, parameters)

    async def fetchone(
        self,
        sql: str,
        parameters: tuple[Any, ...] | list[Any] | None = None,
    ) -> tuple[Any, ...] | None:
        """단일 행 조회"""
        cursor = await self.execute(sql, parameters)
        return await cursor.fetchone()

    async def fetchall(
        self,
        sql: str,
        parameters: tuple[Any, ...] | list[Any] | None = None,
    ) -> list[tuple[Any, ...]]:
        """전체 행 조회"""
        cursor = await self.execute(sql, parameters)
        return await cursor.fetchall()

    async def fetchone_dict(
        self,
        sql: str,
        parameters: tuple[Any, ...] | list[Any] | None = None,
    ) -> dict[str, Any] | None:
        """단일 행을 {컬럼: 값} 딕셔너리로 조회"""
        cursor = await self.execute(sql, parameters)
        row = await cursor.fetchone()
        if row is None:
            return None
        return _rows_to_dicts(cursor, [row])[0]

    async def fetchall_dicts(
        self,
        sql: str,
        parameters: tuple[Any, ...] | list[Any] | None = None,
    ) -> list[dict[str, Any]]:
        """전체 행을 딕셔너리 목록으로 조회"""
        cursor = await self.execute(sql, parameters)
        rows = await cursor.fetchall()
        return _rows_to_dicts(cursor, rows)

    async def commit(self) -> None:
        """커밋"""
        if self._conn is not None:
            await self._conn.commit()

    async def rollback(self) -> None:
        """롤백"""
        if self._conn is not None:
            await self._conn.rollback()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """트랜잭션 컨텍스트 매니저

        성공 시 자동 커밋, 예외 시 자동 롤백.
        BEGIN IMMEDIATE로 시작하므로 블록 안의 조회도 같은 트랜잭션에 포함됨.

        연결은 하나를 공유하므로 최상위 트랜잭션은 asyncio.Lock으로 직렬화.
        같은 태스크 안의 중첩 호출은 SAVEPOINT로 바깥 트랜잭션에 참여하고,
        중첩 블록에서 예외가 나면 그 블록의 쓰기만 되돌린 뒤 재전파.

        사용 예시:
        ```python
        async with adapter.transaction() as conn:
            await conn.execute("INSERT INTO ...")
            # 성공 시 자동 커밋
        ```
        """
        if self._conn is None:
            raise RuntimeError("Not connected to database")

        depth = self._tx_depth.get()
        if depth > 0:
            savepoint = f"sp_{depth}"
            await self._conn.execute(f"SAVEPOINT {savepoint}")
            token = self._tx_depth.set(depth + 1)
            try:
                yield self._conn
                await self._conn.execute(f"RELEASE {savepoint}")
            except BaseException:
                await self._conn.execute(f"ROLLBACK TO {savepoint}")
                await self._conn.execute(f"RELEASE {savepoint}")
                raise
            finally:
                self._tx_depth.reset(token)
            return

        async with self._tx_lock:
            await self._conn.execute("BEGIN IMMEDIATE")
            token = self._tx_depth.set(1)
            try:
                yield self._conn
                await self._conn.commit()
            except BaseException:
                await self._conn.rollback()
                raise
            finally:
                self._tx_depth.reset(token)

    async def table_exists(self, table_name: str) -> bool:
        """테이블 존재 여부 확인"""
        result = await self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SQLiteAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def init_schema(adapter: SQLiteAdapter) -> None:
    """스키마 초기화 (테이블 생성)

    Args:
        adapter: 연결된 SQLiteAdapter

    금액은 Decimal 문자열(TEXT), 날짜는 ISO 문자열로 저장.
    """
    # accounts (조회 전용 협력 테이블)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS accounts (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            workspace_id     INTEGER NOT NULL,
            name             TEXT NOT NULL,
            template         TEXT NOT NULL
                CHECK (template IN ('bank', 'cash', 'ewallet', 'credit_card')),
            deleted_at       TEXT,
            created_at       TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # categories
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS categories (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            workspace_id     INTEGER NOT NULL,
            name             TEXT NOT NULL,
            deleted_at       TEXT,
            created_at       TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # loan_providers
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS loan_providers (
            id                    INTEGER PRIMARY KEY AUTOINCREMENT,
            workspace_id          INTEGER NOT NULL,
            name                  TEXT NOT NULL,
            cutoff_day            INTEGER NOT NULL CHECK (cutoff_day BETWEEN 1 AND 31),
            default_interest_rate TEXT NOT NULL DEFAULT '0',
            deleted_at            TEXT,
            created_at            TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # recurring_templates
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS recurring_templates (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            workspace_id      INTEGER NOT NULL,
            description       TEXT NOT NULL,
            amount            TEXT NOT NULL,
            category_id       INTEGER NOT NULL REFERENCES categories(id),
            account_id        INTEGER NOT NULL REFERENCES accounts(id),
            frequency         TEXT NOT NULL DEFAULT 'monthly',
            start_date        TEXT NOT NULL,
            end_date          TEXT,
            settlement_intent TEXT CHECK (settlement_intent IN ('immediate', 'deferred')),
            is_active         INTEGER NOT NULL DEFAULT 1,
            created_at        TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at        TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # loans
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS loans (
            id                  INTEGER PRIMARY KEY AUTOINCREMENT,
            workspace_id        INTEGER NOT NULL,
            provider_id         INTEGER NOT NULL REFERENCES loan_providers(id),
            item_name           TEXT NOT NULL,
            total_amount        TEXT NOT NULL,
            num_months          INTEGER NOT NULL CHECK (num_months >= 1),
            purchase_date       TEXT NOT NULL,
            interest_rate       TEXT NOT NULL DEFAULT '0',
            monthly_payment     TEXT NOT NULL,
            first_payment_year  INTEGER NOT NULL,
            first_payment_month INTEGER NOT NULL CHECK (first_payment_month BETWEEN 1 AND 12),
            account_id          INTEGER NOT NULL REFERENCES accounts(id),
            settlement_intent   TEXT CHECK (settlement_intent IN ('immediate', 'deferred')),
            notes               TEXT,
            deleted_at          TEXT,
            created_at          TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at          TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # entries (원장 항목)
    # CC 불변식을 CHECK 제약으로 강제
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS entries (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            workspace_id      INTEGER NOT NULL,
            account_id        INTEGER NOT NULL REFERENCES accounts(id),
            category_id       INTEGER REFERENCES categories(id),
            name              TEXT NOT NULL,
            amount            TEXT NOT NULL,
            entry_type        TEXT NOT NULL CHECK (entry_type IN ('income', 'expense')),
            entry_date        TEXT NOT NULL,
            is_paid           INTEGER NOT NULL DEFAULT 0,
            source            TEXT NOT NULL DEFAULT 'manual'
                CHECK (source IN ('manual', 'recurring', 'loan')),
            template_id       INTEGER REFERENCES recurring_templates(id) ON DELETE SET NULL,
            loan_id           INTEGER REFERENCES loans(id) ON DELETE SET NULL,
            is_projected      INTEGER NOT NULL DEFAULT 0,
            cc_state          TEXT CHECK (cc_state IN ('pending', 'billed', 'settled')),
            settlement_intent TEXT CHECK (settlement_intent IN ('immediate', 'deferred')),
            billed_at         TEXT,
            transfer_pair_id  TEXT,
            is_cc_payment     INTEGER NOT NULL DEFAULT 0,
            notes             TEXT,
            deleted_at        TEXT,
            created_at        TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at        TEXT NOT NULL DEFAULT (datetime('now')),

            CHECK (template_id IS NULL OR loan_id IS NULL),
            CHECK ((cc_state IS NULL) = (settlement_intent IS NULL)),
            CHECK (cc_state IS NULL OR (billed_at IS NULL) = (cc_state = 'pending')),
            CHECK (cc_state IS NOT 'settled' OR is_paid = 1),
            CHECK (cc_state IS NOT 'pending' OR is_paid = 0)
        )
    """)

    # projection_exclusions
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS projection_exclusions (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            workspace_id     INTEGER NOT NULL,
            template_id      INTEGER NOT NULL
                REFERENCES recurring_templates(id) ON DELETE CASCADE,
            excluded_month   TEXT NOT NULL,
            created_at       TEXT NOT NULL DEFAULT (datetime('now')),

            UNIQUE(workspace_id, template_id, excluded_month)
        )
    """)

    # 인덱스 생성
    # 같은 템플릿/월의 projection 중복 삽입은 스토어가 거부
    await adapter.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS ux_entries_projection_month
        ON entries(workspace_id, template_id, substr(entry_date, 1, 7))
        WHERE is_projected = 1 AND template_id IS NOT NULL AND deleted_at IS NULL
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_entries_workspace_date
        ON entries(workspace_id, entry_date)
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_entries_template
        ON entries(template_id) WHERE template_id IS NOT NULL
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_entries_loan
        ON entries(loan_id) WHERE loan_id IS NOT NULL
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_entries_cc_state
        ON entries(workspace_id, cc_state) WHERE cc_state IS NOT NULL
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_templates_active
        ON recurring_templates(is_active, workspace_id)
    """)

    await adapter.commit()

    logger.info("스키마 초기화 완료")
