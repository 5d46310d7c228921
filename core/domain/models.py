"""
원장 도메인 모델

원장 항목, 반복 템플릿, 대출 및 조회용 엔티티(계좌/카테고리/대출 제공자).

CC 전용 필드(상태/청구 시각/정산 의도)는 CreditCardData 하나로 묶어서
`entry.cc is None` ⇔ 카드 계좌가 아님이 구조적으로 보장되도록 함.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from core.domain.errors import ValidationError
from core.domain.state_machines import CCStateMachine
from core.types import (
    AccountTemplate,
    CCState,
    EntrySource,
    EntryType,
    Frequency,
    SettlementIntent,
)


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


# -------------------------------------------------------------------------
# 조회용 엔티티
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class Account:
    """계좌"""

    id: int
    workspace_id: int
    name: str
    template: AccountTemplate

    @property
    def is_credit_card(self) -> bool:
        return self.template == AccountTemplate.CREDIT_CARD

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Account":
        return cls(
            id=row["id"],
            workspace_id=row["workspace_id"],
            name=row["name"],
            template=AccountTemplate(row["template"]),
        )


@dataclass(frozen=True)
class Category:
    """예산 카테고리"""

    id: int
    workspace_id: int
    name: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Category":
        return cls(id=row["id"], workspace_id=row["workspace_id"], name=row["name"])


@dataclass(frozen=True)
class LoanProvider:
    """대출 제공자 (카드사/할부 제공처)

    Attributes:
        cutoff_day: 결제일 기준일 (1-31). 구매일이 이 날짜 이전이면 당월 청구
        default_interest_rate: 기본 연이율 (%)
    """

    id: int
    workspace_id: int
    name: str
    cutoff_day: int
    default_interest_rate: Decimal

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "LoanProvider":
        return cls(
            id=row["id"],
            workspace_id=row["workspace_id"],
            name=row["name"],
            cutoff_day=row["cutoff_day"],
            default_interest_rate=Decimal(str(row["default_interest_rate"])),
        )


# -------------------------------------------------------------------------
# CC 데이터 (tagged variant)
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class CreditCardData:
    """카드 계좌 항목에만 존재하는 생명주기 데이터

    불변식: billed_at은 state가 BILLED 또는 SETTLED일 때만 설정됨.

    상태 변경은 새 인스턴스를 반환하며 CCStateMachine 규칙을 따름.
    """

    state: CCState
    intent: SettlementIntent
    billed_at: datetime | None = None

    def __post_init__(self) -> None:
        has_billed_at = self.billed_at is not None
        if has_billed_at != (self.state != CCState.PENDING):
            raise ValidationError(
                f"billed_at must be set only for billed/settled entries (state={self.state.value})",
                field="billed_at",
            )

    @classmethod
    def pending(cls, intent: SettlementIntent | None = None) -> "CreditCardData":
        """신규 카드 항목 (의도 미지정 시 DEFERRED)"""
        return cls(state=CCState.PENDING, intent=intent or SettlementIntent.DEFERRED)

    def _transition(self, to_state: CCState) -> None:
        CCStateMachine(self.state).transition(to_state)

    def bill(self, billed_at: datetime) -> "CreditCardData":
        """PENDING → BILLED"""
        self._transition(CCState.BILLED)
        return replace(self, state=CCState.BILLED, billed_at=billed_at)

    def unbill(self) -> "CreditCardData":
        """BILLED → PENDING"""
        self._transition(CCState.PENDING)
        return replace(self, state=CCState.PENDING, billed_at=None)

    def settle(self) -> "CreditCardData":
        """BILLED → SETTLED"""
        self._transition(CCState.SETTLED)
        return replace(self, state=CCState.SETTLED)


# -------------------------------------------------------------------------
# 원장 항목
# -------------------------------------------------------------------------


@dataclass
class LedgerEntry:
    """원장 항목 (거래 1건)

    불변식:
    - template_id와 loan_id는 동시에 설정되지 않음
    - cc가 SETTLED이면 is_paid=True, PENDING이면 is_paid=False
    """

    workspace_id: int
    account_id: int
    name: str
    amount: Decimal
    entry_type: EntryType
    entry_date: date
    source: EntrySource = EntrySource.MANUAL
    is_paid: bool = False
    category_id: int | None = None
    template_id: int | None = None
    loan_id: int | None = None
    is_projected: bool = False
    cc: CreditCardData | None = None
    transfer_pair_id: str | None = None
    is_cc_payment: bool = False
    notes: str | None = None
    id: int | None = None
    is_modified: bool = False  # 파생 값 (템플릿 대비 사용자 수정 여부)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.template_id is not None and self.loan_id is not None:
            raise ValidationError(
                "entry cannot be linked to both a template and a loan",
                field="template_id",
            )
        if self.cc is not None:
            if self.cc.state == CCState.SETTLED and not self.is_paid:
                raise ValidationError("settled CC entry must be paid", field="is_paid")
            if self.cc.state == CCState.PENDING and self.is_paid:
                raise ValidationError("pending CC entry cannot be paid", field="is_paid")

    @property
    def cc_state(self) -> CCState | None:
        return self.cc.state if self.cc else None

    @property
    def settlement_intent(self) -> SettlementIntent | None:
        return self.cc.intent if self.cc else None

    @property
    def billed_at(self) -> datetime | None:
        return self.cc.billed_at if self.cc else None

    @property
    def month_key(self) -> str:
        """YYYY-MM"""
        return self.entry_date.strftime("%Y-%m")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "LedgerEntry":
        """DB 행에서 생성"""
        cc: CreditCardData | None = None
        if row.get("cc_state"):
            cc = CreditCardData(
                state=CCState(row["cc_state"]),
                intent=SettlementIntent(row["settlement_intent"]),
                billed_at=_parse_datetime(row.get("billed_at")),
            )

        return cls(
            id=row["id"],
            workspace_id=row["workspace_id"],
            account_id=row["account_id"],
            name=row["name"],
            amount=Decimal(str(row["amount"])),
            entry_type=EntryType(row["entry_type"]),
            entry_date=_parse_date(row["entry_date"]),  # type: ignore[arg-type]
            source=EntrySource(row["source"]),
            is_paid=bool(row["is_paid"]),
            category_id=row.get("category_id"),
            template_id=row.get("template_id"),
            loan_id=row.get("loan_id"),
            is_projected=bool(row.get("is_projected", 0)),
            cc=cc,
            transfer_pair_id=row.get("transfer_pair_id"),
            is_cc_payment=bool(row.get("is_cc_payment", 0)),
            notes=row.get("notes"),
            created_at=_parse_datetime(row.get("created_at")),
            updated_at=_parse_datetime(row.get("updated_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환 (직렬화용)"""
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "account_id": self.account_id,
            "name": self.name,
            "amount": str(self.amount),
            "type": self.entry_type.value,
            "date": self.entry_date.isoformat(),
            "source": self.source.value,
            "is_paid": self.is_paid,
            "category_id": self.category_id,
            "template_id": self.template_id,
            "loan_id": self.loan_id,
            "is_projected": self.is_projected,
            "is_modified": self.is_modified,
            "cc_state": self.cc.state.value if self.cc else None,
            "settlement_intent": self.cc.intent.value if self.cc else None,
            "billed_at": (
                self.cc.billed_at.isoformat()
                if self.cc and self.cc.billed_at
                else None
            ),
            "transfer_pair_id": self.transfer_pair_id,
            "is_cc_payment": self.is_cc_payment,
        }


# -------------------------------------------------------------------------
# 반복 템플릿
# -------------------------------------------------------------------------


@dataclass
class RecurringTemplate:
    """반복 거래 템플릿

    매월 start_date의 일(day)에 해당하는 날짜로 projection 생성.
    end_date가 없으면 무기한.
    """

    workspace_id: int
    description: str
    amount: Decimal
    category_id: int
    account_id: int
    start_date: date
    end_date: date | None = None
    frequency: Frequency = Frequency.MONTHLY
    settlement_intent: SettlementIntent | None = None
    is_active: bool = True
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def start_day(self) -> int:
        return self.start_date.day

    def differs_from(self, entry: LedgerEntry) -> bool:
        """항목이 이 템플릿 값에서 벗어났는지 (사용자 수정 여부)"""
        return (
            entry.name != self.description
            or entry.amount != self.amount
            or entry.category_id != self.category_id
            or entry.account_id != self.account_id
        )

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RecurringTemplate":
        return cls(
            id=row["id"],
            workspace_id=row["workspace_id"],
            description=row["description"],
            amount=Decimal(str(row["amount"])),
            category_id=row["category_id"],
            account_id=row["account_id"],
            start_date=_parse_date(row["start_date"]),  # type: ignore[arg-type]
            end_date=_parse_date(row.get("end_date")),
            frequency=Frequency(row["frequency"]),
            settlement_intent=(
                SettlementIntent(row["settlement_intent"])
                if row.get("settlement_intent")
                else None
            ),
            is_active=bool(row["is_active"]),
            created_at=_parse_datetime(row.get("created_at")),
            updated_at=_parse_datetime(row.get("updated_at")),
        )


# -------------------------------------------------------------------------
# 대출
# -------------------------------------------------------------------------


@dataclass
class Loan:
    """할부 대출

    생성 후 금액/기간/스케줄은 변경 불가. 이름/메모/제공자만 수정 가능.
    """

    workspace_id: int
    provider_id: int
    item_name: str
    total_amount: Decimal
    num_months: int
    purchase_date: date
    interest_rate: Decimal
    monthly_payment: Decimal
    first_payment_year: int
    first_payment_month: int
    account_id: int
    settlement_intent: SettlementIntent | None = None
    notes: str | None = None
    id: int | None = None
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def last_payment_year_month(self) -> tuple[int, int]:
        """마지막 납부 (year, month)"""
        index = self.first_payment_year * 12 + (self.first_payment_month - 1) + self.num_months - 1
        return index // 12, index % 12 + 1

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Loan":
        return cls(
            id=row["id"],
            workspace_id=row["workspace_id"],
            provider_id=row["provider_id"],
            item_name=row["item_name"],
            total_amount=Decimal(str(row["total_amount"])),
            num_months=row["num_months"],
            purchase_date=_parse_date(row["purchase_date"]),  # type: ignore[arg-type]
            interest_rate=Decimal(str(row["interest_rate"])),
            monthly_payment=Decimal(str(row["monthly_payment"])),
            first_payment_year=row["first_payment_year"],
            first_payment_month=row["first_payment_month"],
            account_id=row["account_id"],
            settlement_intent=(
                SettlementIntent(row["settlement_intent"])
                if row.get("settlement_intent")
                else None
            ),
            notes=row.get("notes"),
            deleted_at=_parse_datetime(row.get("deleted_at")),
            created_at=_parse_datetime(row.get("created_at")),
            updated_at=_parse_datetime(row.get("updated_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "provider_id": self.provider_id,
            "item_name": self.item_name,
            "total_amount": str(self.total_amount),
            "num_months": self.num_months,
            "purchase_date": self.purchase_date.isoformat(),
            "interest_rate": str(self.interest_rate),
            "monthly_payment": str(self.monthly_payment),
            "first_payment_year": self.first_payment_year,
            "first_payment_month": self.first_payment_month,
            "account_id": self.account_id,
            "settlement_intent": self.settlement_intent.value if self.settlement_intent else None,
            "notes": self.notes,
        }

