"""ProjectionGenerator 통합 테스트"""

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.mock.event_sink import RecordingEventPublisher
from core.domain.errors import AccountNotFoundError
from core.domain.models import RecurringTemplate
from core.ledger.projection import ProjectionGenerator, due_dates, first_candidate_date
from core.storage.entry_store import EntryStore
from core.storage.exclusion_store import ExclusionStore
from core.storage.template_store import TemplateStore
from core.types import CCState, EntrySource, EntryType, SettlementIntent

from tests.integration.helpers import NOW, Seed, count_rows


async def _insert_template(
    db: SQLiteAdapter,
    seed: Seed,
    account_id: int | None = None,
    start_date: date = date(2026, 1, 31),
    end_date: date | None = None,
    intent: SettlementIntent | None = None,
    amount: str = "1200",
) -> RecurringTemplate:
    return await TemplateStore(db).insert(
        RecurringTemplate(
            workspace_id=seed.workspace_id,
            description="Rent",
            amount=Decimal(amount),
            category_id=seed.category.id,
            account_id=account_id or seed.bank.id,
            start_date=start_date,
            end_date=end_date,
            settlement_intent=intent,
        )
    )


@pytest_asyncio.fixture
async def template(db: SQLiteAdapter, seed: Seed) -> RecurringTemplate:
    """매월 말일 은행 계좌 템플릿"""
    return await _insert_template(db, seed)


class TestFirstCandidateDate:
    """첫 생성 후보 날짜 테스트"""

    def _template(self, start: date) -> RecurringTemplate:
        return RecurringTemplate(
            workspace_id=1,
            description="Rent",
            amount=Decimal("10"),
            category_id=1,
            account_id=1,
            start_date=start,
        )

    def test_future_start_date_used_as_is(self) -> None:
        """시작일이 미래면 그대로 사용"""
        assert first_candidate_date(self._template(date(2026, 6, 5)), date(2026, 3, 15)) == date(2026, 6, 5)

    def test_day_later_this_month(self) -> None:
        """이번 달 해당 일이 아직 안 지났으면 이번 달"""
        assert first_candidate_date(self._template(date(2025, 1, 20)), date(2026, 3, 15)) == date(2026, 3, 20)

    def test_day_today_moves_to_next_month(self) -> None:
        """오늘이 해당 일이면 다음 달"""
        assert first_candidate_date(self._template(date(2025, 1, 15)), date(2026, 3, 15)) == date(2026, 4, 15)

    def test_month_end_clamped(self) -> None:
        """31일 템플릿은 2월 말일로 보정"""
        assert first_candidate_date(self._template(date(2025, 1, 31)), date(2026, 2, 10)) == date(2026, 2, 28)

    def test_due_dates_keep_original_day(self) -> None:
        """2월 보정 후에도 다음 달은 원래 일(31일)로 복귀"""
        dates = due_dates(self._template(date(2025, 1, 31)), date(2026, 2, 10), 2)
        assert dates == [date(2026, 2, 28), date(2026, 3, 31)]


class TestGenerate:
    """Projection 생성 테스트"""

    @pytest.mark.asyncio
    async def test_generates_twelve_months(
        self,
        generator: ProjectionGenerator,
        entries: EntryStore,
        template: RecurringTemplate,
        seed: Seed,
    ) -> None:
        """12개월 범위 생성 (월말 보정 포함)"""
        result = await generator.generate(template, now=NOW)

        assert result.created == 12
        assert result.skipped == 0

        created = await entries.list_by_template(seed.workspace_id, template.id)
        assert [e.entry_date for e in created[:3]] == [
            date(2026, 3, 31),
            date(2026, 4, 30),
            date(2026, 5, 31),
        ]
        assert created[-1].entry_date == date(2027, 2, 28)

    @pytest.mark.asyncio
    async def test_entry_fields(
        self,
        generator: ProjectionGenerator,
        template: RecurringTemplate,
    ) -> None:
        """생성 항목 필드 (일반 계좌면 CC 데이터 없음)"""
        result = await generator.generate(template, now=NOW)
        entry = result.entries[0]

        assert entry.name == "Rent"
        assert entry.amount == Decimal("1200")
        assert entry.entry_type == EntryType.EXPENSE
        assert entry.source == EntrySource.RECURRING
        assert entry.is_projected is True
        assert entry.is_paid is False
        assert entry.template_id == template.id
        assert entry.cc is None

    @pytest.mark.asyncio
    async def test_idempotent(
        self,
        generator: ProjectionGenerator,
        template: RecurringTemplate,
        db: SQLiteAdapter,
    ) -> None:
        """두 번 실행해도 추가 생성 없음"""
        await generator.generate(template, now=NOW)
        second = await generator.generate(template, now=NOW)

        assert second.created == 0
        assert second.skipped == 12
        assert await count_rows(db, "SELECT COUNT(*) FROM entries") == 12

    @pytest.mark.asyncio
    async def test_excluded_month_skipped(
        self,
        generator: ProjectionGenerator,
        exclusions: ExclusionStore,
        entries: EntryStore,
        template: RecurringTemplate,
        seed: Seed,
    ) -> None:
        """제외된 월은 생성하지 않음"""
        await exclusions.add(seed.workspace_id, template.id, date(2026, 5, 1))

        result = await generator.generate(template, now=NOW)

        assert result.created == 11
        months = [e.month_key for e in await entries.list_by_template(seed.workspace_id, template.id)]
        assert "2026-05" not in months

    @pytest.mark.asyncio
    async def test_end_date_caps_range(
        self,
        generator: ProjectionGenerator,
        db: SQLiteAdapter,
        seed: Seed,
    ) -> None:
        """종료일 이후는 생성하지 않음"""
        template = await _insert_template(db, seed, end_date=date(2026, 6, 30))

        result = await generator.generate(template, now=NOW)

        assert [e.entry_date for e in result.entries] == [
            date(2026, 3, 31),
            date(2026, 4, 30),
            date(2026, 5, 31),
            date(2026, 6, 30),
        ]

    @pytest.mark.asyncio
    async def test_card_account_gets_pending_cc_data(
        self,
        generator: ProjectionGenerator,
        db: SQLiteAdapter,
        seed: Seed,
    ) -> None:
        """카드 계좌 템플릿은 PENDING + DEFERRED 기본값"""
        template = await _insert_template(db, seed, account_id=seed.card.id)

        result = await generator.generate(template, now=NOW)

        cc = result.entries[0].cc
        assert cc is not None
        assert cc.state == CCState.PENDING
        assert cc.intent == SettlementIntent.DEFERRED
        assert cc.billed_at is None

    @pytest.mark.asyncio
    async def test_card_account_uses_template_intent(
        self,
        generator: ProjectionGenerator,
        db: SQLiteAdapter,
        seed: Seed,
    ) -> None:
        """템플릿 정산 의도 사용"""
        template = await _insert_template(
            db, seed, account_id=seed.card.id, intent=SettlementIntent.IMMEDIATE
        )

        result = await generator.generate(template, now=NOW)

        assert all(e.settlement_intent == SettlementIntent.IMMEDIATE for e in result.entries)

    @pytest.mark.asyncio
    async def test_missing_account_raises(
        self,
        generator: ProjectionGenerator,
        template: RecurringTemplate,
        db: SQLiteAdapter,
    ) -> None:
        """계좌가 없으면 오류, 아무것도 생성하지 않음"""
        template.account_id = 9999

        with pytest.raises(AccountNotFoundError):
            await generator.generate(template, now=NOW)

        assert await count_rows(db, "SELECT COUNT(*) FROM entries") == 0

    @pytest.mark.asyncio
    async def test_publishes_batch_created(
        self,
        generator: ProjectionGenerator,
        publisher: RecordingEventPublisher,
        template: RecurringTemplate,
    ) -> None:
        """생성 시 이벤트 1건, 생성 없으면 이벤트 없음"""
        await generator.generate(template, now=NOW)
        await generator.generate(template, now=NOW)

        events = publisher.get_by_type("projection.batch_created")
        assert len(events) == 1
        assert events[0].payload["created"] == 12
        assert events[0].payload["months"][0] == "2026-03"

    @pytest.mark.asyncio
    async def test_unique_index_rejects_duplicate_month(
        self,
        generator: ProjectionGenerator,
        entries: EntryStore,
        template: RecurringTemplate,
    ) -> None:
        """같은 (템플릿, 월) projection은 저장소가 무시"""
        result = await generator.generate(template, now=NOW)
        duplicate = result.entries[0]
        duplicate.id = None
        duplicate.entry_date = date(2026, 3, 1)

        assert await entries.insert_projection(duplicate) is None


class TestResync:
    """템플릿 수정 후 재동기화 테스트"""

    @pytest.mark.asyncio
    async def test_edited_entries_preserved(
        self,
        generator: ProjectionGenerator,
        entries: EntryStore,
        template: RecurringTemplate,
        seed: Seed,
    ) -> None:
        """사용자가 수정한 항목은 유지, 나머지는 새 값"""
        result = await generator.generate(template, now=NOW)
        edited = result.entries[1]
        edited.amount = Decimal("999")
        await entries.update_core_fields(edited)

        new = RecurringTemplate(**{**template.__dict__, "amount": Decimal("1300")})
        resync = await generator.resync(template, new, now=NOW)

        assert resync.preserved == 1
        assert resync.updated == 11
        assert resync.created == 0

        refreshed = await entries.list_by_template(seed.workspace_id, template.id)
        amounts = {e.id: e.amount for e in refreshed}
        assert amounts[edited.id] == Decimal("999")
        assert sorted(set(amounts.values())) == [Decimal("999"), Decimal("1300")]

    @pytest.mark.asyncio
    async def test_paid_flag_preserved(
        self,
        generator: ProjectionGenerator,
        entries: EntryStore,
        template: RecurringTemplate,
        seed: Seed,
    ) -> None:
        """지급 여부는 유지"""
        result = await generator.generate(template, now=NOW)
        await entries.mark_paid(seed.workspace_id, [result.entries[0].id], NOW)

        new = RecurringTemplate(**{**template.__dict__, "description": "Rent (new)"})
        await generator.resync(template, new, now=NOW)

        first = await entries.get(seed.workspace_id, result.entries[0].id)
        assert first.is_paid is True
        assert first.name == "Rent (new)"

    @pytest.mark.asyncio
    async def test_account_change_to_card_adds_cc_data(
        self,
        generator: ProjectionGenerator,
        entries: EntryStore,
        template: RecurringTemplate,
        seed: Seed,
    ) -> None:
        """일반 → 카드 계좌 변경 시 CC 데이터 생성"""
        await generator.generate(template, now=NOW)

        new = RecurringTemplate(**{**template.__dict__, "account_id": seed.card.id})
        await generator.resync(template, new, now=NOW)

        refreshed = await entries.list_by_template(seed.workspace_id, template.id)
        assert all(e.cc_state == CCState.PENDING for e in refreshed)

    @pytest.mark.asyncio
    async def test_shortened_end_date_removes_tail(
        self,
        generator: ProjectionGenerator,
        entries: EntryStore,
        template: RecurringTemplate,
        seed: Seed,
    ) -> None:
        """종료일 단축 시 이후 projection 삭제"""
        await generator.generate(template, now=NOW)

        new = RecurringTemplate(**{**template.__dict__, "end_date": date(2026, 5, 31)})
        resync = await generator.resync(template, new, now=NOW)

        assert resync.removed == 9
        remaining = await entries.list_by_template(seed.workspace_id, template.id)
        assert [e.month_key for e in remaining] == ["2026-03", "2026-04", "2026-05"]


class TestCleanupAndEnrich:
    """종료일 정리 / 수정 여부 계산 테스트"""

    @pytest.mark.asyncio
    async def test_cleanup_beyond_end_keeps_paid(
        self,
        generator: ProjectionGenerator,
        entries: EntryStore,
        template: RecurringTemplate,
        seed: Seed,
    ) -> None:
        """지급 완료 항목은 종료일 이후라도 유지"""
        result = await generator.generate(template, now=NOW)
        paid = result.entries[-1]
        await entries.mark_paid(seed.workspace_id, [paid.id], NOW)

        removed = await generator.cleanup_beyond_end(
            seed.workspace_id, template.id, date(2026, 3, 31)
        )

        assert removed == 10
        remaining = await entries.list_by_template(seed.workspace_id, template.id)
        assert [e.id for e in remaining] == [result.entries[0].id, paid.id]

    @pytest.mark.asyncio
    async def test_enrich_modified(
        self,
        generator: ProjectionGenerator,
        template: RecurringTemplate,
    ) -> None:
        """템플릿과 다른 항목만 is_modified"""
        result = await generator.generate(template, now=NOW)
        result.entries[0].name = "Rent (changed)"

        enriched = ProjectionGenerator.enrich_modified(
            result.entries[:2], {template.id: template}
        )

        assert [e.is_modified for e in enriched] == [True, False]
