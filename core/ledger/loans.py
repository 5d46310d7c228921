"""
대출 서비스

할부 대출 생성 시 N개월 납부 항목을 함께 생성하고,
수정/삭제/월 단위 납부 규칙을 적용.
"""

import calendar
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.events.publisher import NoOpEventPublisher
from adapters.interfaces import IEventPublisher
from core.constants import Limits
from core.domain.errors import (
    AccountNotFoundError,
    LoanNotFoundError,
    LoanPaymentAtomicityError,
    NoTransactionsToSettleError,
    ProviderChangeAfterPaymentsError,
    ProviderNotFoundError,
    ValidationError,
)
from core.domain.events import DomainEvent, EventActions, EventEntities
from core.domain.models import Account, CreditCardData, LedgerEntry, Loan, LoanProvider
from core.domain.results import (
    LoanDeleteStats,
    LoanEditCheck,
    LoanInput,
    LoanPreview,
    LoanUpdate,
    LoanWithStats,
    MonthlyCommitments,
    MonthlyPaymentDetail,
    PayLoanMonthResult,
    ScheduledPayment,
)
from core.ledger.loan_calculator import (
    build_schedule,
    calculate_first_due_month,
    calculate_monthly_payment,
    calculate_total_with_interest,
)
from core.ledger.templates import parse_settlement_intent
from core.storage.entry_store import EntryStore, sum_amounts
from core.storage.loan_store import LoanStore
from core.storage.lookup_store import LookupStore, validate_interest_rate
from core.types import EntrySource, EntryType, LoanFilter, SettlementIntent
from core.utils.dates import add_months, as_utc, now_utc

logger = logging.getLogger(__name__)


def validate_item_name(item_name: str | None) -> str:
    """품목명 검증

    Returns:
        앞뒤 공백 제거된 품목명
    """
    name = (item_name or "").strip()
    if not name:
        raise ValidationError("item name is required", field="item_name")
    if len(name) > Limits.LOAN_ITEM_NAME_MAX:
        raise ValidationError(
            f"item name must be {Limits.LOAN_ITEM_NAME_MAX} characters or less",
            field="item_name",
        )
    return name


def build_loan_stats(loan: Loan, entries: list[LedgerEntry]) -> LoanWithStats:
    """대출 + 연결 항목 → 납부 통계"""
    last_year, last_month = add_months(
        loan.first_payment_year, loan.first_payment_month, loan.num_months - 1
    )
    return LoanWithStats(
        loan=loan,
        last_payment_year=last_year,
        last_payment_month=last_month,
        total_count=len(entries),
        paid_count=sum(1 for entry in entries if entry.is_paid),
        remaining_balance=sum_amounts(entry for entry in entries if not entry.is_paid),
    )


@dataclass
class _LoanPlan:
    """검증 및 계산이 끝난 대출 (쓰기 전)"""

    item_name: str
    provider: LoanProvider
    account: Account
    interest_rate: Decimal
    intent: SettlementIntent | None
    monthly_payment: Decimal
    first_year: int
    first_month: int
    schedule: list[ScheduledPayment]


class LoanService:
    """대출 서비스

    Args:
        db: SQLiteAdapter 인스턴스
        entries: 원장 항목 저장소
        lookups: 계좌/제공자 조회
        publisher: 이벤트 발행자

    사용 예시:
    ```python
    service = LoanService(db, EntryStore(db), LookupStore(db))

    loan = await service.create_loan(workspace_id, LoanInput(
        provider_id=provider.id,
        item_name="Laptop",
        total_amount=Decimal("300"),
        num_months=3,
        purchase_date=date(2026, 3, 10),
        account_id=card.id,
    ))

    result = await service.pay_loan_month(workspace_id, loan.id, 2026, 3)
    ```
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        entries: EntryStore,
        lookups: LookupStore,
        publisher: IEventPublisher | None = None,
    ):
        self.db = db
        self.entries = entries
        self.lookups = lookups
        self.loans = LoanStore(db)
        self.publisher = publisher or NoOpEventPublisher()

    def _publish(self, entity: str, action: str, workspace_id: int, payload: dict) -> None:
        self.publisher.publish(DomainEvent.create(entity, action, workspace_id, payload))

    async def _get_or_raise(self, workspace_id: int, loan_id: int) -> Loan:
        loan = await self.loans.get(workspace_id, loan_id)
        if loan is None:
            raise LoanNotFoundError()
        return loan

    # -------------------------------------------------------------------------
    # 생성 / 미리보기
    # -------------------------------------------------------------------------

    async def _plan(self, workspace_id: int, data: LoanInput) -> _LoanPlan:
        """입력 검증 + 스케줄 계산 (쓰기 없음)

        Raises:
            ValidationError: 입력 오류
            ProviderNotFoundError / AccountNotFoundError: 참조 대상 없음
        """
        item_name = validate_item_name(data.item_name)
        if Decimal(data.total_amount) <= 0:
            raise ValidationError("total amount must be positive", field="total_amount")
        if data.num_months < 1:
            raise ValidationError("number of months must be at least 1", field="num_months")
        if data.interest_rate is not None:
            validate_interest_rate(Decimal(data.interest_rate))
        intent = parse_settlement_intent(data.settlement_intent)

        provider = await self.lookups.get_provider(workspace_id, data.provider_id)
        if provider is None:
            raise ProviderNotFoundError()
        account = await self.lookups.get_account(workspace_id, data.account_id)
        if account is None:
            raise AccountNotFoundError()

        rate = (
            Decimal(data.interest_rate)
            if data.interest_rate is not None
            else provider.default_interest_rate
        )
        monthly_payment = calculate_monthly_payment(data.total_amount, rate, data.num_months)
        first_year, first_month = calculate_first_due_month(data.purchase_date, provider.cutoff_day)

        return _LoanPlan(
            item_name=item_name,
            provider=provider,
            account=account,
            interest_rate=rate,
            intent=(intent or SettlementIntent.DEFERRED) if account.is_credit_card else None,
            monthly_payment=monthly_payment,
            first_year=first_year,
            first_month=first_month,
            schedule=build_schedule(
                first_year, first_month, data.num_months, monthly_payment, data.custom_amounts
            ),
        )

    async def preview_loan(self, workspace_id: int, data: LoanInput) -> LoanPreview:
        """대출 계산 결과 미리보기 (쓰기 없음)"""
        plan = await self._plan(workspace_id, data)
        last = plan.schedule[-1]
        return LoanPreview(
            monthly_payment=plan.monthly_payment,
            total_with_interest=calculate_total_with_interest(data.total_amount, plan.interest_rate),
            interest_rate=plan.interest_rate,
            first_payment_year=plan.first_year,
            first_payment_month=plan.first_month,
            last_payment_year=last.year,
            last_payment_month=last.month,
            schedule=plan.schedule,
        )

    async def create_loan(self, workspace_id: int, data: LoanInput) -> Loan:
        """대출 + N개월 납부 항목 생성 (단일 트랜잭션)

        카드 계좌로 결제하는 대출의 항목만 CC 데이터(PENDING)를 가짐.

        Returns:
            생성된 Loan
        """
        plan = await self._plan(workspace_id, data)

        async with self.db.transaction():
            loan = await self.loans.insert(
                Loan(
                    workspace_id=workspace_id,
                    provider_id=plan.provider.id,
                    item_name=plan.item_name,
                    total_amount=Decimal(data.total_amount),
                    num_months=data.num_months,
                    purchase_date=data.purchase_date,
                    interest_rate=plan.interest_rate,
                    monthly_payment=plan.monthly_payment,
                    first_payment_year=plan.first_year,
                    first_payment_month=plan.first_month,
                    account_id=plan.account.id,
                    settlement_intent=plan.intent,
                    notes=data.notes,
                )
            )
            await self.entries.insert_many(
                [
                    LedgerEntry(
                        workspace_id=workspace_id,
                        account_id=plan.account.id,
                        name=plan.item_name,
                        amount=payment.amount,
                        entry_type=EntryType.EXPENSE,
                        entry_date=payment.due_date,
                        source=EntrySource.LOAN,
                        is_paid=False,
                        loan_id=loan.id,
                        cc=CreditCardData.pending(plan.intent) if plan.intent else None,
                    )
                    for payment in plan.schedule
                ]
            )

        logger.info(
            "대출 생성",
            extra={
                "workspace_id": workspace_id,
                "loan_id": loan.id,
                "num_months": loan.num_months,
                "monthly_payment": str(loan.monthly_payment),
            },
        )
        self._publish(
            EventEntities.LOAN,
            EventActions.CREATED,
            workspace_id,
            {
                "loan_id": loan.id,
                "item_name": loan.item_name,
                "num_months": loan.num_months,
                "monthly_payment": str(loan.monthly_payment),
            },
        )
        return loan

    # -------------------------------------------------------------------------
    # 수정 / 삭제
    # -------------------------------------------------------------------------

    async def _paid_count(self, workspace_id: int, loan_id: int) -> int:
        entries = await self.entries.list_by_loan(workspace_id, loan_id)
        return sum(1 for entry in entries if entry.is_paid)

    async def update_loan(self, workspace_id: int, loan_id: int, data: LoanUpdate) -> Loan:
        """품목명/메모/제공자 수정

        지급된 항목이 있으면 제공자 변경 불가.
        품목명 또는 제공자가 바뀌면 미납 항목 이름도 갱신.

        Raises:
            LoanNotFoundError: 대출 없음
            ProviderChangeAfterPaymentsError: 지급 후 제공자 변경 시도
        """
        current = await self._get_or_raise(workspace_id, loan_id)

        item_name = (
            validate_item_name(data.item_name) if data.item_name is not None else current.item_name
        )
        provider_changing = data.provider_id is not None and data.provider_id != current.provider_id
        if provider_changing:
            if await self._paid_count(workspace_id, loan_id):
                raise ProviderChangeAfterPaymentsError()
            if await self.lookups.get_provider(workspace_id, data.provider_id) is None:  # type: ignore[arg-type]
                raise ProviderNotFoundError()

        updated = replace(
            current,
            item_name=item_name,
            notes=data.notes if data.notes is not None else current.notes,
            provider_id=data.provider_id if provider_changing else current.provider_id,  # type: ignore[arg-type]
        )

        async with self.db.transaction():
            await self.loans.update_details(updated)
            renamed = 0
            if item_name != current.item_name or provider_changing:
                renamed = await self.entries.rename_unpaid_by_loan(workspace_id, loan_id, item_name)

        logger.info(
            "대출 수정",
            extra={"loan_id": loan_id, "provider_changed": provider_changing, "renamed": renamed},
        )
        self._publish(
            EventEntities.LOAN,
            EventActions.UPDATED,
            workspace_id,
            {"loan_id": loan_id, "item_name": updated.item_name},
        )
        return updated

    async def get_edit_check(self, workspace_id: int, loan_id: int) -> LoanEditCheck:
        await self._get_or_raise(workspace_id, loan_id)
        paid_count = await self._paid_count(workspace_id, loan_id)
        return LoanEditCheck(
            loan_id=loan_id,
            paid_count=paid_count,
            can_change_provider=paid_count == 0,
        )

    async def get_delete_stats(self, workspace_id: int, loan_id: int) -> LoanDeleteStats:
        """삭제 시 영향 (유지될 지급 항목 / 삭제될 미납 항목)"""
        await self._get_or_raise(workspace_id, loan_id)
        entries = await self.entries.list_by_loan(workspace_id, loan_id)
        paid = [entry for entry in entries if entry.is_paid]
        unpaid = [entry for entry in entries if not entry.is_paid]
        return LoanDeleteStats(
            loan_id=loan_id,
            paid_count=len(paid),
            unpaid_count=len(unpaid),
            total_paid=sum_amounts(paid),
            total_unpaid=sum_amounts(unpaid),
        )

    async def delete_loan(self, workspace_id: int, loan_id: int) -> LoanDeleteStats:
        """대출 삭제

        순서: 지급 항목 연결 해제 → 미납 항목 삭제 → 대출 soft delete (단일 트랜잭션)
        """
        stats = await self.get_delete_stats(workspace_id, loan_id)

        async with self.db.transaction():
            await self.entries.orphan_paid_by_loan(workspace_id, loan_id)
            await self.entries.delete_unpaid_by_loan(workspace_id, loan_id)
            await self.loans.soft_delete(workspace_id, loan_id, now_utc())

        logger.info(
            "대출 삭제",
            extra={
                "loan_id": loan_id,
                "orphaned": stats.paid_count,
                "removed": stats.unpaid_count,
            },
        )
        self._publish(
            EventEntities.LOAN,
            EventActions.DELETED,
            workspace_id,
            {"loan_id": loan_id, "removed": stats.unpaid_count},
        )
        return stats

    # -------------------------------------------------------------------------
    # 월 단위 납부
    # -------------------------------------------------------------------------

    async def pay_loan_month(
        self,
        workspace_id: int,
        loan_id: int,
        year: int,
        month: int,
        now: datetime | None = None,
    ) -> PayLoanMonthResult:
        """해당 월 미납 항목 일괄 지급 처리

        카드 항목은 SETTLED로 전이.

        Raises:
            LoanNotFoundError: 대출 없음
            NoTransactionsToSettleError: 해당 월 미납 항목 없음
            LoanPaymentAtomicityError: 일부 항목만 갱신됨 (롤백)
        """
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", field="month")
        loan = await self._get_or_raise(workspace_id, loan_id)
        paid_at = as_utc(now)

        async with self.db.transaction():
            unpaid = await self.entries.list_unpaid_for_loan_month(workspace_id, loan_id, year, month)
            if not unpaid:
                raise NoTransactionsToSettleError()

            affected = await self.entries.mark_paid(
                workspace_id, [entry.id for entry in unpaid], paid_at  # type: ignore[misc]
            )
            if affected != len(unpaid):
                logger.error(
                    "대출 납부 원자성 위반",
                    extra={"loan_id": loan_id, "requested": len(unpaid), "affected": affected},
                )
                raise LoanPaymentAtomicityError()

        total = sum_amounts(unpaid)
        result = PayLoanMonthResult(
            loan_id=loan_id,
            year=year,
            month=month,
            paid_count=len(unpaid),
            total_amount=total,
            message=f"{calendar.month_name[month]} {year} settled for {loan.item_name}",
        )

        logger.info(
            "대출 월 납부",
            extra={"loan_id": loan_id, "year": year, "month": month, "paid": len(unpaid)},
        )
        self._publish(
            EventEntities.LOAN_PAYMENT,
            EventActions.BATCH_PAID,
            workspace_id,
            {
                "loan_id": loan_id,
                "year": year,
                "month": month,
                "paid_count": len(unpaid),
                "total_amount": str(total),
            },
        )
        return result

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    async def get_loan(self, workspace_id: int, loan_id: int) -> Loan:
        return await self._get_or_raise(workspace_id, loan_id)

    async def list_loans(self, workspace_id: int) -> list[Loan]:
        return await self.loans.list_by_workspace(workspace_id)

    async def list_loan_entries(self, workspace_id: int, loan_id: int) -> list[LedgerEntry]:
        await self._get_or_raise(workspace_id, loan_id)
        return await self.entries.list_by_loan(workspace_id, loan_id)

    async def list_loans_with_stats(
        self,
        workspace_id: int,
        loan_filter: LoanFilter | str = LoanFilter.ALL,
    ) -> list[LoanWithStats]:
        """납부 통계가 붙은 대출 목록

        Args:
            loan_filter: ACTIVE(미납 잔액 > 0) / COMPLETED(미납 잔액 = 0) / ALL
        """
        loan_filter = LoanFilter(loan_filter)
        loans = await self.loans.list_by_workspace(workspace_id)
        by_loan: dict[int, list[LedgerEntry]] = {}
        for entry in await self.entries.list_loan_linked(workspace_id):
            by_loan.setdefault(entry.loan_id, []).append(entry)  # type: ignore[arg-type]

        result = [
            build_loan_stats(loan, by_loan.get(loan.id, []))  # type: ignore[arg-type]
            for loan in loans
        ]
        if loan_filter == LoanFilter.ACTIVE:
            return [stats for stats in result if not stats.is_completed]
        if loan_filter == LoanFilter.COMPLETED:
            return [stats for stats in result if stats.is_completed]
        return result

    async def list_active_loans(self, workspace_id: int) -> list[LoanWithStats]:
        return await self.list_loans_with_stats(workspace_id, LoanFilter.ACTIVE)

    async def list_completed_loans(self, workspace_id: int) -> list[LoanWithStats]:
        return await self.list_loans_with_stats(workspace_id, LoanFilter.COMPLETED)

    async def list_loans_by_provider(
        self,
        workspace_id: int,
        provider_id: int,
    ) -> list[LoanWithStats]:
        """제공자별 대출 (미납 잔액 있는 대출 먼저, 그다음 품목명순)"""
        loans = [
            stats
            for stats in await self.list_loans_with_stats(workspace_id)
            if stats.loan.provider_id == provider_id
        ]
        return sorted(loans, key=lambda stats: (stats.is_completed, stats.loan.item_name))

    async def get_monthly_commitments(
        self,
        workspace_id: int,
        year: int,
        month: int,
    ) -> MonthlyCommitments:
        """해당 월 대출 납부 약정 (지급/미납 합계 + 항목별 상세)

        Raises:
            ValidationError: month가 1~12 범위 밖
        """
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", field="month")

        entries = await self.entries.list_loan_linked_for_month(workspace_id, year, month)
        loans = {loan.id: loan for loan in await self.loans.list_by_workspace(workspace_id)}
        result = MonthlyCommitments(year=year, month=month)

        for entry in entries:
            loan = loans.get(entry.loan_id)
            if loan is None:
                continue
            # 첫 납부 월 기준 회차 (1부터)
            payment_number = (
                (year - loan.first_payment_year) * 12 + (month - loan.first_payment_month) + 1
            )
            result.payments.append(
                MonthlyPaymentDetail(
                    entry_id=entry.id,  # type: ignore[arg-type]
                    loan_id=loan.id,  # type: ignore[arg-type]
                    item_name=entry.name,
                    payment_number=payment_number,
                    total_payments=loan.num_months,
                    amount=entry.amount,
                    paid=entry.is_paid,
                )
            )
            if entry.is_paid:
                result.total_paid += entry.amount
            else:
                result.total_unpaid += entry.amount

        return result
