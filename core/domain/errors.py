"""
원장 도메인 오류

오류 분류:
- ValidationError: 잘못된 입력 (쓰기 전에 항상 검출)
- NotFoundError: 참조 대상 없음 (다른 workspace 소유도 동일하게 취급)
- StateConflictError: 현재 상태에서 허용되지 않는 작업
- AtomicityError: 일괄 갱신 행 수 불일치 (작업 전체를 실패로 간주)

HTTP 레이어는 앞의 세 가지를 4xx로, AtomicityError와 스토리지 오류를 5xx로 매핑.
"""

from typing import Any


class LedgerError(Exception):
    """원장 오류 기본 클래스"""

    default_message: str = "ledger error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


# -------------------------------------------------------------------------
# 분류 기본 클래스
# -------------------------------------------------------------------------


class ValidationError(LedgerError):
    """입력 검증 오류

    Args:
        message: 오류 메시지
        field: 문제가 된 입력 필드 이름
    """

    default_message = "validation failed"

    def __init__(self, message: str | None = None, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(LedgerError):
    """참조 대상 없음"""

    default_message = "not found"


class StateConflictError(LedgerError):
    """상태 충돌"""

    default_message = "state conflict"


class AtomicityError(LedgerError):
    """일괄 갱신 원자성 위반"""

    default_message = "atomic update affected fewer rows than requested"


# -------------------------------------------------------------------------
# Not found
# -------------------------------------------------------------------------


class AccountNotFoundError(NotFoundError):
    default_message = "account not found"


class CategoryNotFoundError(NotFoundError):
    default_message = "budget category not found"


class EntryNotFoundError(NotFoundError):
    default_message = "transaction not found"


class TransactionsNotFoundError(NotFoundError):
    """정산 대상 일부를 찾을 수 없음"""

    default_message = "one or more transactions not found"


class TemplateNotFoundError(NotFoundError):
    default_message = "recurring template not found"


class LoanNotFoundError(NotFoundError):
    default_message = "loan not found"


class ProviderNotFoundError(NotFoundError):
    default_message = "loan provider not found"


class LinkedEntryNotFoundError(NotFoundError):
    """템플릿에 연결하려는 기존 항목 없음"""

    default_message = "linked transaction not found"


# -------------------------------------------------------------------------
# Validation
# -------------------------------------------------------------------------


class EmptySettlementError(ValidationError):
    default_message = "no transactions to settle"


class InvalidSourceAccountError(ValidationError):
    """정산 출금 계좌가 없거나 카드 계좌임"""

    default_message = "source account must be a non-credit-card account"


class InvalidTargetAccountError(ValidationError):
    """정산 대상 계좌가 없거나 카드 계좌가 아님"""

    default_message = "target account must be a credit card account"


# -------------------------------------------------------------------------
# State conflict
# -------------------------------------------------------------------------


class NotCCTransactionError(StateConflictError):
    default_message = "not a CC transaction"


class CCStateTransitionError(StateConflictError):
    default_message = "invalid CC state transition"


class TransactionNotBilledError(StateConflictError):
    default_message = "transaction is not billed"


class TransactionNotDeferredError(StateConflictError):
    default_message = "transaction does not have deferred settlement intent"


class NotOverdueError(StateConflictError):
    default_message = "transaction is not overdue"


class ProviderChangeAfterPaymentsError(StateConflictError):
    default_message = "cannot change provider after payments have been made"


class NoTransactionsToSettleError(StateConflictError):
    """해당 월에 미납 대출 항목 없음"""

    default_message = "no unpaid transactions for this month"


# -------------------------------------------------------------------------
# Atomicity
# -------------------------------------------------------------------------


class SettlementAtomicityError(AtomicityError):
    default_message = "settlement failed: not all transactions could be settled"


class LoanPaymentAtomicityError(AtomicityError):
    default_message = "loan payment failed: not all transactions could be marked paid"


# -------------------------------------------------------------------------
# 동기화 작업
# -------------------------------------------------------------------------


class SyncError(LedgerError):
    """일일 동기화 집계 오류

    템플릿별 실패를 모아서 작업 종료 시 한 번에 보고.

    Args:
        failed: 실패한 템플릿 수
        total: 처리한 템플릿 수
        errors: (template_id, 예외) 목록
        report: 동기화 결과 요약
    """

    def __init__(
        self,
        failed: int,
        total: int,
        errors: list[tuple[int, Exception]],
        report: Any = None,
    ):
        super().__init__(f"sync completed with {failed} errors out of {total} templates")
        self.failed = failed
        self.total = total
        self.errors = errors
        self.report = report


def is_client_error(exc: BaseException) -> bool:
    """호출자 입력으로 인한 오류인지 여부 (HTTP 4xx 매핑용)"""
    return isinstance(exc, (ValidationError, NotFoundError, StateConflictError))
