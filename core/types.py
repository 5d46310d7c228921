"""
타입 정의 모듈

Enum 등 핵심 타입 정의
모든 Enum은 str을 상속하여 문자열 직렬화 가능
"""

from enum import Enum


class AccountTemplate(str, Enum):
    """계좌 템플릿

    CREDIT_CARD만 CC 생명주기에 참여함.
    """

    BANK = "bank"
    CASH = "cash"
    EWALLET = "ewallet"
    CREDIT_CARD = "credit_card"


class EntryType(str, Enum):
    """원장 항목 유형"""

    INCOME = "income"
    EXPENSE = "expense"


class EntrySource(str, Enum):
    """원장 항목 출처"""

    MANUAL = "manual"
    RECURRING = "recurring"
    LOAN = "loan"


class Frequency(str, Enum):
    """반복 주기 (현재 월 단위만 지원)"""

    MONTHLY = "monthly"


class CCState(str, Enum):
    """CC 생명주기 상태

    PENDING → BILLED → SETTLED
    """

    PENDING = "pending"
    BILLED = "billed"
    SETTLED = "settled"


class SettlementIntent(str, Enum):
    """CC 정산 의도

    - IMMEDIATE: 같은 청구 주기에 결제
    - DEFERRED: 이후 정산 시점으로 이월
    """

    IMMEDIATE = "immediate"
    DEFERRED = "deferred"


class LoanFilter(str, Enum):
    """대출 목록 필터

    - ACTIVE: 미납 잔액 > 0
    - COMPLETED: 미납 잔액 = 0
    """

    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"
