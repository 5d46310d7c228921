"""
통합 테스트 공통 fixture

임시 SQLite DB + 스키마 + 두 workspace의 기본 데이터
(일반 계좌, 카드 계좌, 카테고리, 대출 제공자).
"""

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from adapters.mock.event_sink import RecordingEventPublisher
from core.domain.models import CreditCardData, LedgerEntry
from core.ledger.cc import CCLifecycleService
from core.ledger.exclusions import ExclusionTracker
from core.ledger.loans import LoanService
from core.ledger.projection import ProjectionGenerator
from core.ledger.settlement import SettlementEngine
from core.ledger.templates import RecurringTemplateService
from core.storage.entry_store import EntryStore
from core.storage.exclusion_store import ExclusionStore
from core.storage.lookup_store import LookupStore
from core.types import AccountTemplate, CCState, EntryType, SettlementIntent

from tests.integration.helpers import NOW, OTHER_WORKSPACE_ID, WORKSPACE_ID, Seed


@pytest_asyncio.fixture
async def db(temp_dir: Path) -> SQLiteAdapter:
    """스키마가 초기화된 임시 DB"""
    adapter = SQLiteAdapter(temp_dir / "test_ledger.db")
    await adapter.connect()
    await init_schema(adapter)

    yield adapter

    await adapter.close()


@pytest.fixture
def entries(db: SQLiteAdapter) -> EntryStore:
    return EntryStore(db)


@pytest.fixture
def lookups(db: SQLiteAdapter) -> LookupStore:
    return LookupStore(db)


@pytest.fixture
def exclusions(db: SQLiteAdapter) -> ExclusionStore:
    return ExclusionStore(db)


@pytest.fixture
def publisher() -> RecordingEventPublisher:
    return RecordingEventPublisher()


async def _seed_workspace(lookups: LookupStore, workspace_id: int) -> Seed:
    return Seed(
        workspace_id=workspace_id,
        bank=await lookups.create_account(workspace_id, "Checking", AccountTemplate.BANK),
        card=await lookups.create_account(workspace_id, "Visa", AccountTemplate.CREDIT_CARD),
        category=await lookups.create_category(workspace_id, "Housing"),
        provider=await lookups.create_provider(workspace_id, "Card Co", cutoff_day=15),
    )


@pytest_asyncio.fixture
async def seed(lookups: LookupStore) -> Seed:
    """workspace 1 기본 데이터"""
    return await _seed_workspace(lookups, WORKSPACE_ID)


@pytest_asyncio.fixture
async def other_seed(lookups: LookupStore, seed: Seed) -> Seed:
    """workspace 2 기본 데이터 (격리 확인용)"""
    return await _seed_workspace(lookups, OTHER_WORKSPACE_ID)


# -------------------------------------------------------------------------
# 서비스
# -------------------------------------------------------------------------


@pytest.fixture
def generator(
    db: SQLiteAdapter,
    entries: EntryStore,
    exclusions: ExclusionStore,
    lookups: LookupStore,
    publisher: RecordingEventPublisher,
) -> ProjectionGenerator:
    return ProjectionGenerator(db, entries, exclusions, lookups, publisher)


@pytest.fixture
def template_service(
    db: SQLiteAdapter,
    generator: ProjectionGenerator,
    publisher: RecordingEventPublisher,
) -> RecurringTemplateService:
    return RecurringTemplateService(db, generator, publisher)


@pytest.fixture
def tracker(
    db: SQLiteAdapter,
    entries: EntryStore,
    exclusions: ExclusionStore,
    publisher: RecordingEventPublisher,
) -> ExclusionTracker:
    return ExclusionTracker(db, entries, exclusions, publisher)


@pytest.fixture
def loan_service(
    db: SQLiteAdapter,
    entries: EntryStore,
    lookups: LookupStore,
    publisher: RecordingEventPublisher,
) -> LoanService:
    return LoanService(db, entries, lookups, publisher)


@pytest.fixture
def cc_service(
    db: SQLiteAdapter,
    entries: EntryStore,
    lookups: LookupStore,
    publisher: RecordingEventPublisher,
) -> CCLifecycleService:
    return CCLifecycleService(db, entries, publisher, lookups=lookups)


@pytest.fixture
def engine(
    db: SQLiteAdapter,
    entries: EntryStore,
    lookups: LookupStore,
    publisher: RecordingEventPublisher,
) -> SettlementEngine:
    return SettlementEngine(db, entries, lookups, publisher)


# -------------------------------------------------------------------------
# 항목 팩토리
# -------------------------------------------------------------------------


@pytest.fixture
def make_card_entry(entries: EntryStore):
    """카드 지출 항목 생성 팩토리

    사용 예시:
    ```python
    entry = await make_card_entry(seed, "50", state=CCState.BILLED)
    ```
    """

    async def _make(
        seed: Seed,
        amount: str,
        state: CCState = CCState.PENDING,
        intent: SettlementIntent = SettlementIntent.DEFERRED,
        billed_at: datetime | None = None,
        entry_date: date = date(2026, 3, 1),
        name: str = "Groceries",
    ) -> LedgerEntry:
        if state != CCState.PENDING and billed_at is None:
            billed_at = NOW
        return await entries.insert(
            LedgerEntry(
                workspace_id=seed.workspace_id,
                account_id=seed.card.id,
                category_id=seed.category.id,
                name=name,
                amount=Decimal(amount),
                entry_type=EntryType.EXPENSE,
                entry_date=entry_date,
                is_paid=state == CCState.SETTLED,
                cc=CreditCardData(
                    state=state,
                    intent=intent,
                    billed_at=billed_at if state != CCState.PENDING else None,
                ),
            )
        )

    return _make

