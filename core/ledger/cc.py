"""
CC 생명주기 서비스

카드 항목 상태 전이 (pending → billed → settled) 와 CC 지표/정산 대상 조회.
카드 대금 납부(이체 쌍) 기록도 담당.

상태 전이 규칙은 CreditCardData / CCStateMachine이 담당하고
이 서비스는 조회-검증-저장 순서와 이벤트 발행을 담당.
"""

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.events.publisher import NoOpEventPublisher
from adapters.interfaces import IEventPublisher
from core.constants import Defaults, Limits
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
from core.domain.events import DomainEvent, EventActions, EventEntities
from core.domain.models import LedgerEntry
from core.domain.results import (
    CCMetrics,
    CCPaymentInput,
    CCPaymentResult,
    DeferredGroup,
    OverdueSummary,
    PayableBreakdown,
)
from core.storage.entry_store import EntryStore, sum_amounts
from core.storage.lookup_store import LookupStore
from core.types import CCState, EntryType, SettlementIntent
from core.utils.dates import add_months, as_utc, days_in_month

logger = logging.getLogger(__name__)


def months_ago(now: datetime, months: int) -> datetime:
    """now에서 months개월 전 (월말 보정)"""
    year, month = add_months(now.year, now.month, -months)
    return now.replace(year=year, month=month, day=min(now.day, days_in_month(year, month)))


def group_by_origin_month(
    entries: list[LedgerEntry],
    overdue_before: datetime | None = None,
) -> list[DeferredGroup]:
    """원 거래 월별로 묶기 (오래된 월 먼저)

    Args:
        entries: 카드 항목
        overdue_before: 이 시각 이전에 시작한 월은 is_overdue. None이면 전부 연체로 표시
    """
    groups: dict[tuple[int, int], DeferredGroup] = {}

    for entry in entries:
        key = (entry.entry_date.year, entry.entry_date.month)
        group = groups.get(key)
        if group is None:
            first_day = date(*key, 1)
            is_overdue = (
                overdue_before is None
                or first_day < overdue_before.date()
            )
            group = DeferredGroup(
                year=key[0],
                month=key[1],
                month_label=first_day.strftime("%B %Y"),
                is_overdue=is_overdue,
            )
            groups[key] = group

        group.entries.append(entry)
        group.total += entry.amount
        group.item_count += 1

    return [groups[key] for key in sorted(groups)]


class CCLifecycleService:
    """CC 생명주기 서비스

    Args:
        db: SQLiteAdapter 인스턴스
        entries: 원장 항목 저장소
        publisher: 이벤트 발행자
        overdue_months: 연체 판단 기준 (개월)
        lookups: 계좌 조회 (없으면 db로 생성)
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        entries: EntryStore,
        publisher: IEventPublisher | None = None,
        overdue_months: int = Defaults.OVERDUE_MONTHS,
        lookups: LookupStore | None = None,
    ):
        self.db = db
        self.entries = entries
        self.publisher = publisher or NoOpEventPublisher()
        self.overdue_months = overdue_months
        self.lookups = lookups or LookupStore(db)

    async def _get_card_entry(self, workspace_id: int, entry_id: int) -> LedgerEntry:
        entry = await self.entries.get(workspace_id, entry_id)
        if entry is None:
            raise EntryNotFoundError()
        if entry.cc is None:
            raise NotCCTransactionError()
        return entry

    # -------------------------------------------------------------------------
    # 상태 전이
    # -------------------------------------------------------------------------

    async def toggle_billed(
        self,
        workspace_id: int,
        entry_id: int,
        now: datetime | None = None,
    ) -> LedgerEntry:
        """청구 상태 토글

        PENDING → BILLED (billed_at = now), BILLED → PENDING (billed_at 해제).

        Raises:
            EntryNotFoundError: 항목 없음
            NotCCTransactionError: 카드 항목이 아님
            CCStateTransitionError: SETTLED 항목 또는 조회 후 상태가 바뀐 항목
        """
        async with self.db.transaction():
            entry = await self._get_card_entry(workspace_id, entry_id)
            cc = entry.cc
            assert cc is not None

            if cc.state == CCState.PENDING:
                new_cc = cc.bill(as_utc(now))
                action = EventActions.BILLED
            elif cc.state == CCState.BILLED:
                new_cc = cc.unbill()
                action = EventActions.UPDATED
            else:
                raise CCStateTransitionError()

            # 조회 이후 다른 경로로 상태가 바뀌었으면 갱신 0건
            affected = await self.entries.update_cc(
                workspace_id, entry_id, new_cc, expected_state=cc.state
            )
            if affected == 0:
                logger.warning(
                    "CC 청구 상태 변경 충돌",
                    extra={"entry_id": entry_id, "expected": cc.state.value},
                )
                raise CCStateTransitionError(f"entry {entry_id} is no longer {cc.state.value}")

        updated = replace(entry, cc=new_cc)
        logger.info(
            "CC 청구 상태 변경",
            extra={"entry_id": entry_id, "from": cc.state.value, "to": new_cc.state.value},
        )
        self.publisher.publish(
            DomainEvent.create(
                EventEntities.TRANSACTION,
                action,
                workspace_id,
                {"id": entry_id, "cc_state": new_cc.state.value},
            )
        )
        return updated

    # -------------------------------------------------------------------------
    # 카드 대금 납부
    # -------------------------------------------------------------------------

    async def create_cc_payment(
        self,
        workspace_id: int,
        data: CCPaymentInput,
    ) -> CCPaymentResult:
        """카드 대금 납부 기록

        카드 계좌에 수입 항목(is_cc_payment)을 만들고, 출금 계좌가 주어지면
        같은 transfer_pair_id를 가진 지출 항목을 함께 생성 (단일 트랜잭션).
        카드 항목 상태(cc_state)는 바꾸지 않음.

        Raises:
            AccountNotFoundError: 카드/출금 계좌 없음
            InvalidTargetAccountError: 카드 계좌가 아님
            ValidationError: 금액이 양수가 아니거나 메모가 너무 김
            InvalidSourceAccountError: 출금 계좌가 카드 계좌임
        """
        card = await self.lookups.get_account(workspace_id, data.card_account_id)
        if card is None:
            raise AccountNotFoundError()
        if not card.is_credit_card:
            raise InvalidTargetAccountError()

        amount = Decimal(data.amount)
        if amount <= 0:
            raise ValidationError("amount must be positive", field="amount")
        if data.notes and len(data.notes) > Limits.ENTRY_NOTES_MAX:
            raise ValidationError(
                f"notes must be {Limits.ENTRY_NOTES_MAX} characters or less", field="notes"
            )

        if data.source_account_id is not None:
            source = await self.lookups.get_account(workspace_id, data.source_account_id)
            if source is None:
                raise AccountNotFoundError()
            if source.is_credit_card:
                raise InvalidSourceAccountError()

        pair_id = str(uuid.uuid4()) if data.source_account_id is not None else None
        cc_entry = LedgerEntry(
            workspace_id=workspace_id,
            account_id=card.id,  # type: ignore[arg-type]
            name=Defaults.CC_PAYMENT_ENTRY_NAME,
            amount=amount,
            entry_type=EntryType.INCOME,
            entry_date=data.entry_date,
            is_paid=True,
            transfer_pair_id=pair_id,
            is_cc_payment=True,
            notes=data.notes or None,
        )
        source_entry: LedgerEntry | None = None
        if data.source_account_id is not None:
            source_entry = replace(
                cc_entry,
                account_id=data.source_account_id,
                entry_type=EntryType.EXPENSE,
                is_cc_payment=False,
            )

        async with self.db.transaction():
            await self.entries.insert_many(
                [cc_entry] if source_entry is None else [cc_entry, source_entry]
            )

        logger.info(
            "카드 대금 납부 기록",
            extra={
                "workspace_id": workspace_id,
                "card_account_id": card.id,
                "amount": str(amount),
                "paired": source_entry is not None,
            },
        )
        self.publisher.publish(
            DomainEvent.create(
                EventEntities.TRANSACTION,
                EventActions.CREATED,
                workspace_id,
                {
                    "id": cc_entry.id,
                    "source_id": source_entry.id if source_entry else None,
                    "is_cc_payment": True,
                    "amount": str(amount),
                    "transfer_pair_id": pair_id,
                },
            )
        )
        return CCPaymentResult(cc_entry=cc_entry, source_entry=source_entry)

    async def batch_mark_billed(
        self,
        workspace_id: int,
        entry_ids: list[int],
        now: datetime | None = None,
    ) -> list[LedgerEntry]:
        """PENDING 카드 항목 일괄 청구 처리

        다른 workspace / 없는 / PENDING이 아닌 ID는 조용히 건너뜀.

        Returns:
            BILLED로 전이된 항목
        """
        if not entry_ids:
            return []

        billed = await self.entries.mark_billed(workspace_id, entry_ids, as_utc(now))

        if billed:
            logger.info(
                "CC 일괄 청구",
                extra={
                    "workspace_id": workspace_id,
                    "requested": len(entry_ids),
                    "billed": len(billed),
                },
            )
            self.publisher.publish(
                DomainEvent.create(
                    EventEntities.TRANSACTION,
                    EventActions.BATCH_BILLED,
                    workspace_id,
                    {"ids": [entry.id for entry in billed], "count": len(billed)},
                )
            )
        return billed

    # -------------------------------------------------------------------------
    # 지표
    # -------------------------------------------------------------------------

    async def get_metrics(
        self,
        workspace_id: int,
        start: date | None = None,
        end: date | None = None,
    ) -> CCMetrics:
        """기간 내 카드 지출 지표

        - pending: 미청구 미납
        - outstanding: 청구됨 미납 DEFERRED
        - purchases: 상태 무관 전체
        """
        expenses = await self.entries.list_card_expenses(workspace_id, start, end)

        pending = [
            e for e in expenses
            if e.cc_state == CCState.PENDING and not e.is_paid
        ]
        outstanding = [
            e for e in expenses
            if e.cc_state == CCState.BILLED
            and not e.is_paid
            and e.settlement_intent == SettlementIntent.DEFERRED
        ]

        return CCMetrics(
            pending=sum_amounts(pending),
            outstanding=sum_amounts(outstanding),
            purchases=sum_amounts(expenses),
        )

    async def get_payable_breakdown(self, workspace_id: int) -> PayableBreakdown:
        """청구됨 미납 항목을 정산 의도별로 합산"""
        immediate = await self.entries.list_billed_unpaid(workspace_id, SettlementIntent.IMMEDIATE)
        deferred = await self.entries.list_billed_unpaid(workspace_id, SettlementIntent.DEFERRED)
        return PayableBreakdown(
            immediate_total=sum_amounts(immediate),
            deferred_total=sum_amounts(deferred),
            immediate_count=len(immediate),
            deferred_count=len(deferred),
        )

    # -------------------------------------------------------------------------
    # 정산 대상 / 연체
    # -------------------------------------------------------------------------

    async def get_deferred_for_settlement(self, workspace_id: int) -> list[LedgerEntry]:
        """정산 가능 항목 (청구됨 미납 DEFERRED)"""
        return await self.entries.list_billed_unpaid(workspace_id, SettlementIntent.DEFERRED)

    async def get_immediate_for_settlement(self, workspace_id: int) -> list[LedgerEntry]:
        return await self.entries.list_billed_unpaid(workspace_id, SettlementIntent.IMMEDIATE)

    async def get_deferred_groups(
        self,
        workspace_id: int,
        now: datetime | None = None,
    ) -> list[DeferredGroup]:
        """정산 가능 항목을 원 거래 월별로 묶기"""
        cutoff = months_ago(as_utc(now), self.overdue_months)
        entries = await self.get_deferred_for_settlement(workspace_id)
        return group_by_origin_month(entries, overdue_before=cutoff)

    async def get_overdue_summary(
        self,
        workspace_id: int,
        now: datetime | None = None,
    ) -> OverdueSummary:
        """연체 요약 (청구 후 overdue_months 이상 지난 DEFERRED 미납 항목)"""
        cutoff = months_ago(as_utc(now), self.overdue_months)
        overdue = await self.entries.list_billed_unpaid(
            workspace_id, SettlementIntent.DEFERRED, billed_before=cutoff
        )
        if not overdue:
            return OverdueSummary(has_overdue=False, total_amount=Decimal("0"), item_count=0)

        return OverdueSummary(
            has_overdue=True,
            total_amount=sum_amounts(overdue),
            item_count=len(overdue),
            groups=group_by_origin_month(overdue),
        )

    async def update_overdue_amount(
        self,
        workspace_id: int,
        entry_id: int,
        amount: Decimal,
        now: datetime | None = None,
    ) -> LedgerEntry:
        """연체 항목 금액 수정

        Raises:
            ValidationError: 금액이 양수가 아님
            EntryNotFoundError / NotCCTransactionError
            NotOverdueError: 연체 항목이 아님
        """
        if Decimal(amount) <= 0:
            raise ValidationError("amount must be positive", field="amount")

        entry = await self._get_card_entry(workspace_id, entry_id)
        cutoff = months_ago(as_utc(now), self.overdue_months)
        is_overdue = (
            entry.cc_state == CCState.BILLED
            and entry.settlement_intent == SettlementIntent.DEFERRED
            and not entry.is_paid
            and entry.billed_at is not None
            and entry.billed_at < cutoff
        )
        if not is_overdue:
            raise NotOverdueError()

        async with self.db.transaction():
            await self.entries.update_amount(workspace_id, entry_id, Decimal(amount))

        logger.info(
            "연체 항목 금액 수정",
            extra={"entry_id": entry_id, "old": str(entry.amount), "new": str(amount)},
        )
        self.publisher.publish(
            DomainEvent.create(
                EventEntities.TRANSACTION,
                EventActions.UPDATED,
                workspace_id,
                {"id": entry_id, "amount": str(amount)},
            )
        )
        return replace(entry, amount=Decimal(amount))
