"""CCLifecycleService 통합 테스트"""

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.mock.event_sink import RecordingEventPublisher
from core.domain.errors import (
    AccountNotFoundError,
    CCStateTransitionError,
    EntryNotFoundError,
    InvalidSourceAccountError,
    InvalidTargetAccountError,
    NotCCTransactionError,
    NotOverdueError,
    ValidationError,
)
from core.domain.models import CreditCardData, LedgerEntry
from core.domain.results import CCPaymentInput
from core.ledger.cc import CCLifecycleService, group_by_origin_month, months_ago
from core.storage.entry_store import EntryStore
from core.types import CCState, EntryType, SettlementIntent

from tests.integration.helpers import NOW, Seed, count_rows

LONG_AGO = datetime(2025, 12, 1, 9, 0, tzinfo=timezone.utc)


class TestMonthsAgo:
    """months_ago 테스트"""

    def test_simple(self) -> None:
        assert months_ago(NOW, 2) == datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_month_end_clamped(self) -> None:
        """3월 31일 - 1개월 → 2월 28일"""
        value = datetime(2026, 3, 31, tzinfo=timezone.utc)
        assert months_ago(value, 1) == datetime(2026, 2, 28, tzinfo=timezone.utc)

    def test_crosses_year(self) -> None:
        value = datetime(2026, 1, 10, tzinfo=timezone.utc)
        assert months_ago(value, 2) == datetime(2025, 11, 10, tzinfo=timezone.utc)


class TestToggleBilled:
    """청구 토글 테스트"""

    @pytest.mark.asyncio
    async def test_pending_to_billed_and_back(
        self,
        cc_service: CCLifecycleService,
        entries: EntryStore,
        publisher: RecordingEventPublisher,
        make_card_entry,
        seed: Seed,
    ) -> None:
        """PENDING → BILLED → PENDING (billed_at 설정/해제)"""
        entry = await make_card_entry(seed, "50")

        billed = await cc_service.toggle_billed(seed.workspace_id, entry.id, now=NOW)
        assert billed.cc_state == CCState.BILLED
        assert billed.billed_at == NOW

        stored = await entries.get(seed.workspace_id, entry.id)
        assert stored.cc_state == CCState.BILLED
        assert stored.billed_at == NOW

        unbilled = await cc_service.toggle_billed(seed.workspace_id, entry.id, now=NOW)
        assert unbilled.cc_state == CCState.PENDING
        assert unbilled.billed_at is None

        stored = await entries.get(seed.workspace_id, entry.id)
        assert stored.billed_at is None
        assert publisher.event_types == ["transaction.billed", "transaction.updated"]

    @pytest.mark.asyncio
    async def test_settled_cannot_toggle(
        self,
        cc_service: CCLifecycleService,
        make_card_entry,
        seed: Seed,
    ) -> None:
        """SETTLED 항목은 토글 불가"""
        entry = await make_card_entry(seed, "50", state=CCState.SETTLED)

        with pytest.raises(CCStateTransitionError):
            await cc_service.toggle_billed(seed.workspace_id, entry.id, now=NOW)

    @pytest.mark.asyncio
    async def test_non_card_entry(
        self,
        cc_service: CCLifecycleService,
        entries: EntryStore,
        seed: Seed,
    ) -> None:
        """일반 계좌 항목은 CC 작업 불가"""
        entry = await entries.insert(
            LedgerEntry(
                workspace_id=seed.workspace_id,
                account_id=seed.bank.id,
                name="Salary",
                amount=Decimal("3000"),
                entry_type=EntryType.INCOME,
                entry_date=date(2026, 3, 1),
            )
        )

        with pytest.raises(NotCCTransactionError):
            await cc_service.toggle_billed(seed.workspace_id, entry.id, now=NOW)

    @pytest.mark.asyncio
    async def test_other_workspace_entry(
        self,
        cc_service: CCLifecycleService,
        make_card_entry,
        seed: Seed,
        other_seed: Seed,
    ) -> None:
        """다른 workspace 항목은 없는 것으로 취급"""
        entry = await make_card_entry(seed, "50")

        with pytest.raises(EntryNotFoundError):
            await cc_service.toggle_billed(other_seed.workspace_id, entry.id, now=NOW)

    @pytest.mark.asyncio
    async def test_settled_between_read_and_write(
        self,
        cc_service: CCLifecycleService,
        entries: EntryStore,
        db: SQLiteAdapter,
        publisher: RecordingEventPublisher,
        make_card_entry,
        seed: Seed,
    ) -> None:
        """조회 직후 정산된 항목은 CCStateTransitionError (IntegrityError 아님)"""
        entry = await make_card_entry(seed, "50", state=CCState.BILLED)
        original_get = entries.get

        async def get_then_settle(workspace_id, entry_id):
            found = await original_get(workspace_id, entry_id)
            await db.execute(
                "UPDATE entries SET cc_state = 'settled', is_paid = 1 WHERE id = ?",
                (entry_id,),
            )
            return found

        with patch.object(entries, "get", side_effect=get_then_settle):
            with pytest.raises(CCStateTransitionError):
                await cc_service.toggle_billed(seed.workspace_id, entry.id, now=NOW)

        stored = await entries.get(seed.workspace_id, entry.id)
        assert stored.cc_state == CCState.BILLED
        assert stored.is_paid is False
        assert publisher.event_types == []

    @pytest.mark.asyncio
    async def test_update_cc_with_stale_state(
        self,
        entries: EntryStore,
        make_card_entry,
        seed: Seed,
    ) -> None:
        """기대 상태와 다르면 갱신 0건"""
        entry = await make_card_entry(seed, "50", state=CCState.SETTLED)

        affected = await entries.update_cc(
            seed.workspace_id,
            entry.id,
            CreditCardData.pending(SettlementIntent.DEFERRED),
            expected_state=CCState.BILLED,
        )

        assert affected == 0
        assert (await entries.get(seed.workspace_id, entry.id)).cc_state == CCState.SETTLED


class TestBatchMarkBilled:
    """일괄 청구 테스트"""

    @pytest.mark.asyncio
    async def test_only_pending_in_workspace_billed(
        self,
        cc_service: CCLifecycleService,
        publisher: RecordingEventPublisher,
        make_card_entry,
        seed: Seed,
        other_seed: Seed,
    ) -> None:
        """PENDING이 아니거나 다른 workspace 항목은 건너뜀, billed_at은 동일"""
        first = await make_card_entry(seed, "10")
        second = await make_card_entry(seed, "20")
        already = await make_card_entry(seed, "30", state=CCState.BILLED, billed_at=LONG_AGO)
        foreign = await make_card_entry(other_seed, "40")

        billed = await cc_service.batch_mark_billed(
            seed.workspace_id, [first.id, second.id, already.id, foreign.id, 9999], now=NOW
        )

        assert [e.id for e in billed] == [first.id, second.id]
        assert {e.billed_at for e in billed} == {NOW}
        events = publisher.get_by_type("transaction.batch_billed")
        assert len(events) == 1
        assert events[0].payload["count"] == 2

    @pytest.mark.asyncio
    async def test_nothing_to_bill(
        self,
        cc_service: CCLifecycleService,
        publisher: RecordingEventPublisher,
        seed: Seed,
    ) -> None:
        """대상이 없으면 이벤트 없음"""
        assert await cc_service.batch_mark_billed(seed.workspace_id, [], now=NOW) == []
        assert await cc_service.batch_mark_billed(seed.workspace_id, [9999], now=NOW) == []
        assert publisher.events == []


class TestMetrics:
    """CC 지표 테스트"""

    @pytest.mark.asyncio
    async def test_metrics_by_state(
        self,
        cc_service: CCLifecycleService,
        make_card_entry,
        seed: Seed,
        other_seed: Seed,
    ) -> None:
        """pending / outstanding / purchases 합계"""
        await make_card_entry(seed, "10")
        await make_card_entry(seed, "20", state=CCState.BILLED)
        await make_card_entry(seed, "30", state=CCState.BILLED, intent=SettlementIntent.IMMEDIATE)
        await make_card_entry(seed, "40", state=CCState.SETTLED)
        await make_card_entry(seed, "99", entry_date=date(2026, 5, 1))
        await make_card_entry(other_seed, "1000")

        metrics = await cc_service.get_metrics(
            seed.workspace_id, start=date(2026, 3, 1), end=date(2026, 3, 31)
        )

        assert metrics.pending == Decimal("10")
        assert metrics.outstanding == Decimal("20")
        assert metrics.purchases == Decimal("100")

    @pytest.mark.asyncio
    async def test_payable_breakdown(
        self,
        cc_service: CCLifecycleService,
        make_card_entry,
        seed: Seed,
    ) -> None:
        """청구됨 미납 항목을 정산 의도별로 분리"""
        await make_card_entry(seed, "20", state=CCState.BILLED)
        await make_card_entry(seed, "25", state=CCState.BILLED)
        await make_card_entry(seed, "30", state=CCState.BILLED, intent=SettlementIntent.IMMEDIATE)

        breakdown = await cc_service.get_payable_breakdown(seed.workspace_id)

        assert breakdown.deferred_total == Decimal("45")
        assert breakdown.deferred_count == 2
        assert breakdown.immediate_total == Decimal("30")
        assert breakdown.total == Decimal("75")

        immediate = await cc_service.get_immediate_for_settlement(seed.workspace_id)
        assert [e.amount for e in immediate] == [Decimal("30")]


class TestDeferredAndOverdue:
    """정산 대상 그룹 / 연체 테스트"""

    @pytest.mark.asyncio
    async def test_deferred_groups_oldest_first(
        self,
        cc_service: CCLifecycleService,
        make_card_entry,
        seed: Seed,
    ) -> None:
        """원 거래 월별 그룹 (오래된 월 먼저)"""
        await make_card_entry(seed, "20", state=CCState.BILLED, entry_date=date(2026, 3, 2))
        await make_card_entry(seed, "15", state=CCState.BILLED, entry_date=date(2025, 12, 20))
        await make_card_entry(seed, "5", state=CCState.BILLED, entry_date=date(2026, 3, 9))

        groups = await cc_service.get_deferred_groups(seed.workspace_id, now=NOW)

        assert [g.month_label for g in groups] == ["December 2025", "March 2026"]
        assert [g.total for g in groups] == [Decimal("15"), Decimal("25")]
        assert [g.item_count for g in groups] == [1, 2]
        assert [g.is_overdue for g in groups] == [True, False]

    @pytest.mark.asyncio
    async def test_overdue_summary(
        self,
        cc_service: CCLifecycleService,
        make_card_entry,
        seed: Seed,
    ) -> None:
        """청구 후 2개월 지난 DEFERRED 미납 항목만 연체"""
        await make_card_entry(
            seed, "70", state=CCState.BILLED, billed_at=LONG_AGO, entry_date=date(2025, 11, 20)
        )
        await make_card_entry(seed, "20", state=CCState.BILLED)
        await make_card_entry(
            seed,
            "30",
            state=CCState.BILLED,
            intent=SettlementIntent.IMMEDIATE,
            billed_at=LONG_AGO,
        )

        summary = await cc_service.get_overdue_summary(seed.workspace_id, now=NOW)

        assert summary.has_overdue is True
        assert summary.total_amount == Decimal("70")
        assert summary.item_count == 1
        assert [g.month_label for g in summary.groups] == ["November 2025"]

    @pytest.mark.asyncio
    async def test_no_overdue(
        self,
        cc_service: CCLifecycleService,
        make_card_entry,
        seed: Seed,
    ) -> None:
        await make_card_entry(seed, "20", state=CCState.BILLED)

        summary = await cc_service.get_overdue_summary(seed.workspace_id, now=NOW)

        assert summary.has_overdue is False
        assert summary.total_amount == Decimal("0")
        assert summary.groups == []

    @pytest.mark.asyncio
    async def test_update_overdue_amount(
        self,
        cc_service: CCLifecycleService,
        entries: EntryStore,
        publisher: RecordingEventPublisher,
        make_card_entry,
        seed: Seed,
    ) -> None:
        """연체 항목 금액 수정 (이자 반영 등)"""
        entry = await make_card_entry(seed, "70", state=CCState.BILLED, billed_at=LONG_AGO)

        updated = await cc_service.update_overdue_amount(
            seed.workspace_id, entry.id, Decimal("75.50"), now=NOW
        )

        assert updated.amount == Decimal("75.50")
        stored = await entries.get(seed.workspace_id, entry.id)
        assert stored.amount == Decimal("75.50")
        assert publisher.event_types == ["transaction.updated"]

    @pytest.mark.asyncio
    async def test_naive_now_treated_as_utc(
        self,
        cc_service: CCLifecycleService,
        entries: EntryStore,
        make_card_entry,
        seed: Seed,
    ) -> None:
        """시간대 없는 now도 UTC로 간주 (TypeError 없음)"""
        entry = await make_card_entry(seed, "70", state=CCState.BILLED, billed_at=LONG_AGO)
        naive_now = NOW.replace(tzinfo=None)

        updated = await cc_service.update_overdue_amount(
            seed.workspace_id, entry.id, Decimal("80"), now=naive_now
        )
        summary = await cc_service.get_overdue_summary(seed.workspace_id, now=naive_now)

        assert updated.amount == Decimal("80")
        assert (await entries.get(seed.workspace_id, entry.id)).amount == Decimal("80")
        assert summary.has_overdue is True
        assert summary.item_count == 1

    @pytest.mark.asyncio
    async def test_update_amount_of_recent_entry_rejected(
        self,
        cc_service: CCLifecycleService,
        make_card_entry,
        seed: Seed,
    ) -> None:
        """연체가 아닌 항목은 수정 불가"""
        entry = await make_card_entry(seed, "20", state=CCState.BILLED)

        with pytest.raises(NotOverdueError):
            await cc_service.update_overdue_amount(seed.workspace_id, entry.id, Decimal("25"), now=NOW)

    @pytest.mark.asyncio
    async def test_update_amount_must_be_positive(
        self,
        cc_service: CCLifecycleService,
        make_card_entry,
        seed: Seed,
    ) -> None:
        entry = await make_card_entry(seed, "70", state=CCState.BILLED, billed_at=LONG_AGO)

        with pytest.raises(ValidationError):
            await cc_service.update_overdue_amount(seed.workspace_id, entry.id, Decimal("0"), now=NOW)


class TestCreateCCPayment:
    """카드 대금 납부 기록 테스트"""

    @pytest.mark.asyncio
    async def test_payment_with_source_creates_pair(
        self,
        cc_service: CCLifecycleService,
        entries: EntryStore,
        publisher: RecordingEventPublisher,
        make_card_entry,
        seed: Seed,
    ) -> None:
        """출금 계좌 지정 → 카드 수입 + 은행 지출, 같은 transfer_pair_id"""
        purchase = await make_card_entry(seed, "120", state=CCState.BILLED)

        result = await cc_service.create_cc_payment(
            seed.workspace_id,
            CCPaymentInput(
                card_account_id=seed.card.id,
                amount=Decimal("120.00"),
                entry_date=date(2026, 3, 20),
                source_account_id=seed.bank.id,
                notes="March statement",
            ),
        )

        cc_entry = await entries.get(seed.workspace_id, result.cc_entry.id)
        source_entry = await entries.get(seed.workspace_id, result.source_entry.id)
        assert cc_entry.account_id == seed.card.id
        assert cc_entry.entry_type == EntryType.INCOME
        assert cc_entry.is_cc_payment is True
        assert cc_entry.is_paid is True
        assert cc_entry.cc is None
        assert source_entry.account_id == seed.bank.id
        assert source_entry.entry_type == EntryType.EXPENSE
        assert source_entry.is_cc_payment is False
        assert source_entry.amount == Decimal("120.00")
        assert cc_entry.transfer_pair_id is not None
        assert cc_entry.transfer_pair_id == source_entry.transfer_pair_id
        assert cc_entry.name == source_entry.name == "CC Payment"
        assert source_entry.notes == "March statement"

        # 카드 항목 상태는 그대로
        assert (await entries.get(seed.workspace_id, purchase.id)).cc_state == CCState.BILLED
        assert publisher.event_types == ["transaction.created"]

    @pytest.mark.asyncio
    async def test_payment_without_source(
        self,
        cc_service: CCLifecycleService,
        db: SQLiteAdapter,
        seed: Seed,
    ) -> None:
        """출금 계좌 없음 → 카드 수입 항목 1건만"""
        result = await cc_service.create_cc_payment(
            seed.workspace_id,
            CCPaymentInput(
                card_account_id=seed.card.id,
                amount=Decimal("40"),
                entry_date=date(2026, 3, 20),
            ),
        )

        assert result.source_entry is None
        assert result.cc_entry.transfer_pair_id is None
        assert result.cc_entry.notes is None
        assert await count_rows(db, "SELECT COUNT(*) FROM entries") == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-5"])
    async def test_amount_must_be_positive(
        self,
        cc_service: CCLifecycleService,
        db: SQLiteAdapter,
        seed: Seed,
        amount: str,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await cc_service.create_cc_payment(
                seed.workspace_id,
                CCPaymentInput(
                    card_account_id=seed.card.id,
                    amount=Decimal(amount),
                    entry_date=date(2026, 3, 20),
                    source_account_id=seed.bank.id,
                ),
            )

        assert exc_info.value.field == "amount"
        assert await count_rows(db, "SELECT COUNT(*) FROM entries") == 0

    @pytest.mark.asyncio
    async def test_account_checks(
        self,
        cc_service: CCLifecycleService,
        db: SQLiteAdapter,
        seed: Seed,
        other_seed: Seed,
    ) -> None:
        """카드 계좌는 카드여야 하고, 출금 계좌는 카드가 아니어야 함"""

        def payment(card_id: int, source_id: int | None) -> CCPaymentInput:
            return CCPaymentInput(
                card_account_id=card_id,
                amount=Decimal("10"),
                entry_date=date(2026, 3, 20),
                source_account_id=source_id,
            )

        with pytest.raises(InvalidTargetAccountError):
            await cc_service.create_cc_payment(seed.workspace_id, payment(seed.bank.id, None))
        with pytest.raises(InvalidSourceAccountError):
            await cc_service.create_cc_payment(
                seed.workspace_id, payment(seed.card.id, seed.card.id)
            )
        with pytest.raises(AccountNotFoundError):
            await cc_service.create_cc_payment(
                seed.workspace_id, payment(other_seed.card.id, None)
            )
        with pytest.raises(AccountNotFoundError):
            await cc_service.create_cc_payment(
                seed.workspace_id, payment(seed.card.id, other_seed.bank.id)
            )

        assert await count_rows(db, "SELECT COUNT(*) FROM entries") == 0

    @pytest.mark.asyncio
    async def test_notes_too_long(
        self,
        cc_service: CCLifecycleService,
        seed: Seed,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await cc_service.create_cc_payment(
                seed.workspace_id,
                CCPaymentInput(
                    card_account_id=seed.card.id,
                    amount=Decimal("10"),
                    entry_date=date(2026, 3, 20),
                    notes="x" * 1001,
                ),
            )

        assert exc_info.value.field == "notes"

    @pytest.mark.asyncio
    async def test_pair_insert_failure_rolls_back(
        self,
        cc_service: CCLifecycleService,
        db: SQLiteAdapter,
        seed: Seed,
    ) -> None:
        """두 번째 항목 저장 실패 시 카드 항목도 남지 않음"""
        original_execute = db.execute
        inserts = 0

        async def fail_second_insert(sql, parameters=None):
            nonlocal inserts
            if sql.startswith("INSERT INTO entries"):
                inserts += 1
                if inserts == 2:
                    raise RuntimeError("disk I/O error")
            return await original_execute(sql, parameters)

        with patch.object(db, "execute", side_effect=fail_second_insert):
            with pytest.raises(RuntimeError):
                await cc_service.create_cc_payment(
                    seed.workspace_id,
                    CCPaymentInput(
                        card_account_id=seed.card.id,
                        amount=Decimal("10"),
                        entry_date=date(2026, 3, 20),
                        source_account_id=seed.bank.id,
                    ),
                )

        assert await count_rows(db, "SELECT COUNT(*) FROM entries") == 0


class TestGroupByOriginMonth:
    """group_by_origin_month 순수 함수 테스트"""

    def _entry(self, entry_date: date, amount: str) -> LedgerEntry:
        return LedgerEntry(
            workspace_id=1,
            account_id=1,
            name="x",
            amount=Decimal(amount),
            entry_type=EntryType.EXPENSE,
            entry_date=entry_date,
        )

    def test_without_cutoff_all_overdue(self) -> None:
        groups = group_by_origin_month(
            [self._entry(date(2026, 2, 3), "1"), self._entry(date(2026, 1, 9), "2")]
        )
        assert [(g.year, g.month) for g in groups] == [(2026, 1), (2026, 2)]
        assert all(g.is_overdue for g in groups)

    def test_empty(self) -> None:
        assert group_by_origin_month([]) == []
