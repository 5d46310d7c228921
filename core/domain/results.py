"""
서비스 입력/결과 값 객체

서비스 메서드가 받는 입력과 반환하는 결과. 영속화되지 않음.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from core.domain.models import LedgerEntry, Loan
from core.types import Frequency, SettlementIntent


# -------------------------------------------------------------------------
# 입력
# -------------------------------------------------------------------------


@dataclass
class TemplateInput:
    """반복 템플릿 생성/수정 입력

    Attributes:
        link_transaction_id: 템플릿에 연결할 기존 항목 ID (선택)
    """

    description: str
    amount: Decimal
    category_id: int
    account_id: int
    start_date: date
    end_date: date | None = None
    frequency: str = Frequency.MONTHLY.value
    settlement_intent: str | None = None
    link_transaction_id: int | None = None


@dataclass
class LoanInput:
    """대출 생성/미리보기 입력

    Attributes:
        interest_rate: 연이율 (%). None이면 제공자 기본값 사용
        custom_amounts: 월별 납부액 (정확히 num_months개일 때만 사용)
    """

    provider_id: int
    item_name: str
    total_amount: Decimal
    num_months: int
    purchase_date: date
    account_id: int
    interest_rate: Decimal | None = None
    settlement_intent: str | None = None
    notes: str | None = None
    custom_amounts: list[Decimal] | None = None


@dataclass
class LoanUpdate:
    """대출 수정 입력 (None 필드는 변경하지 않음)"""

    item_name: str | None = None
    notes: str | None = None
    provider_id: int | None = None


@dataclass
class CCPaymentInput:
    """카드 대금 납부 입력

    Attributes:
        source_account_id: 출금 계좌. 지정하면 출금 지출 항목도 함께 생성 (이체 쌍)
    """

    card_account_id: int
    amount: Decimal
    entry_date: date
    source_account_id: int | None = None
    notes: str | None = None


# -------------------------------------------------------------------------
# Projection
# -------------------------------------------------------------------------


@dataclass
class ProjectionResult:
    """Projection 생성 결과"""

    template_id: int
    created: int = 0
    skipped: int = 0
    entries: list[LedgerEntry] = field(default_factory=list)


@dataclass
class ResyncResult:
    """템플릿 수정 후 재동기화 결과"""

    template_id: int
    updated: int = 0
    preserved: int = 0
    created: int = 0
    removed: int = 0


# -------------------------------------------------------------------------
# 대출
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class ScheduledPayment:
    """대출 스케줄 1회분"""

    year: int
    month: int
    amount: Decimal

    @property
    def due_date(self) -> date:
        return date(self.year, self.month, 1)


@dataclass
class LoanPreview:
    """대출 미리보기 (쓰기 없음)"""

    monthly_payment: Decimal
    total_with_interest: Decimal
    interest_rate: Decimal
    first_payment_year: int
    first_payment_month: int
    last_payment_year: int
    last_payment_month: int
    schedule: list[ScheduledPayment]


@dataclass
class LoanEditCheck:
    """대출 수정 가능 여부"""

    loan_id: int
    paid_count: int
    can_change_provider: bool


@dataclass
class LoanDeleteStats:
    """대출 삭제 시 영향 통계"""

    loan_id: int
    paid_count: int
    unpaid_count: int
    total_paid: Decimal
    total_unpaid: Decimal


@dataclass
class PayLoanMonthResult:
    """월 단위 대출 납부 결과"""

    loan_id: int
    year: int
    month: int
    paid_count: int
    total_amount: Decimal
    message: str


@dataclass
class LoanWithStats:
    """납부 통계가 붙은 대출

    통계는 대출에 연결된 원장 항목에서 계산.
    """

    loan: Loan
    last_payment_year: int
    last_payment_month: int
    total_count: int
    paid_count: int
    remaining_balance: Decimal

    @property
    def remaining_count(self) -> int:
        return self.total_count - self.paid_count

    @property
    def progress(self) -> float:
        """납부 진행률 (%)"""
        if self.total_count == 0:
            return 0.0
        return self.paid_count / self.total_count * 100

    @property
    def is_completed(self) -> bool:
        return self.remaining_balance == 0


@dataclass(frozen=True)
class MonthlyPaymentDetail:
    """해당 월 대출 납부 항목 1건"""

    entry_id: int
    loan_id: int
    item_name: str
    payment_number: int
    total_payments: int
    amount: Decimal
    paid: bool


@dataclass
class MonthlyCommitments:
    """월별 대출 납부 약정 합계"""

    year: int
    month: int
    total_unpaid: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    payments: list[MonthlyPaymentDetail] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return self.total_unpaid + self.total_paid


# -------------------------------------------------------------------------
# CC / 정산
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementResult:
    """정산 결과

    Attributes:
        transfer_id: 생성된 이체 항목 ID
        settled_count: 정산된 항목 수
        total_amount: 정산 총액
        settled_at: 정산 시각
    """

    transfer_id: int
    settled_count: int
    total_amount: Decimal
    settled_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "transfer_id": self.transfer_id,
            "settled_count": self.settled_count,
            "total_amount": str(self.total_amount),
            "settled_at": self.settled_at.isoformat(),
        }


@dataclass(frozen=True)
class CCMetrics:
    """CC 지표

    - pending: 미청구/미납 카드 지출 합계
    - outstanding: 청구됨/미납/DEFERRED 카드 지출 합계
    - purchases: 기간 내 전체 카드 지출 합계 (상태 무관)
    """

    pending: Decimal
    outstanding: Decimal
    purchases: Decimal


@dataclass
class DeferredGroup:
    """원 거래 월별 DEFERRED 항목 묶음"""

    year: int
    month: int
    month_label: str
    total: Decimal = Decimal("0")
    item_count: int = 0
    is_overdue: bool = False
    entries: list[LedgerEntry] = field(default_factory=list)


@dataclass
class OverdueSummary:
    """연체 CC 요약"""

    has_overdue: bool
    total_amount: Decimal
    item_count: int
    groups: list[DeferredGroup] = field(default_factory=list)


@dataclass(frozen=True)
class PayableBreakdown:
    """청구됨/미납 카드 지출을 정산 의도별로 분리"""

    immediate_total: Decimal
    deferred_total: Decimal
    immediate_count: int
    deferred_count: int

    @property
    def total(self) -> Decimal:
        return self.immediate_total + self.deferred_total


@dataclass(frozen=True)
class CCPaymentResult:
    """카드 대금 납부 결과

    source_entry는 출금 계좌를 지정했을 때만 존재.
    """

    cc_entry: LedgerEntry
    source_entry: LedgerEntry | None = None


# -------------------------------------------------------------------------
# 동기화
# -------------------------------------------------------------------------


@dataclass
class SyncReport:
    """일일 동기화 결과"""

    total_templates: int = 0
    synced_templates: int = 0
    created: int = 0
    removed: int = 0
    failed: list[int] = field(default_factory=list)
    created_by_workspace: dict[int, int] = field(default_factory=dict)
