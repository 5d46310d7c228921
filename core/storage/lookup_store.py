"""
LookupStore - 계좌/카테고리/대출 제공자 조회

원장 코어가 필요로 하는 읽기 전용 존재/유형 확인.
삭제된(soft-delete) 행과 다른 workspace 소유 행은 "없음"으로 취급.

생성 메서드는 부트스트랩과 테스트 fixture 용도.
"""

import logging
from decimal import Decimal

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.constants import Limits
from core.domain.errors import ValidationError
from core.domain.models import Account, Category, LoanProvider
from core.types import AccountTemplate

logger = logging.getLogger(__name__)


def validate_provider_fields(name: str, cutoff_day: int, interest_rate: Decimal) -> None:
    """대출 제공자 입력 검증"""
    if not name or not name.strip():
        raise ValidationError("loan provider name is required", field="name")
    if not Limits.CUTOFF_DAY_MIN <= cutoff_day <= Limits.CUTOFF_DAY_MAX:
        raise ValidationError("cutoff day must be between 1 and 31", field="cutoff_day")
    validate_interest_rate(interest_rate)


def validate_interest_rate(rate: Decimal) -> None:
    """연이율 범위 검증 (0-100%)"""
    if rate < Limits.INTEREST_RATE_MIN:
        raise ValidationError("interest rate must be non-negative", field="interest_rate")
    if rate > Limits.INTEREST_RATE_MAX:
        raise ValidationError("interest rate must be 100% or less", field="interest_rate")


class LookupStore:
    """계좌/카테고리/대출 제공자 조회

    Args:
        db: SQLiteAdapter 인스턴스
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    async def get_account(self, workspace_id: int, account_id: int) -> Account | None:
        """계좌 조회 (없거나 다른 workspace면 None)"""
        row = await self.db.fetchone_dict(
            """
            SELECT id, workspace_id, name, template FROM accounts
            WHERE id = ? AND workspace_id = ? AND deleted_at IS NULL
            """,
            (account_id, workspace_id),
        )
        return Account.from_row(row) if row else None

    async def get_category(self, workspace_id: int, category_id: int) -> Category | None:
        """카테고리 조회"""
        row = await self.db.fetchone_dict(
            """
            SELECT id, workspace_id, name FROM categories
            WHERE id = ? AND workspace_id = ? AND deleted_at IS NULL
            """,
            (category_id, workspace_id),
        )
        return Category.from_row(row) if row else None

    async def get_provider(self, workspace_id: int, provider_id: int) -> LoanProvider | None:
        """대출 제공자 조회"""
        row = await self.db.fetchone_dict(
            """
            SELECT id, workspace_id, name, cutoff_day, default_interest_rate
            FROM loan_providers
            WHERE id = ? AND workspace_id = ? AND deleted_at IS NULL
            """,
            (provider_id, workspace_id),
        )
        return LoanProvider.from_row(row) if row else None

    async def is_credit_card(self, workspace_id: int, account_id: int) -> bool:
        """카드 계좌 여부 (계좌가 없으면 False)"""
        account = await self.get_account(workspace_id, account_id)
        return account is not None and account.is_credit_card

    # -------------------------------------------------------------------------
    # 생성 (부트스트랩/테스트용)
    # -------------------------------------------------------------------------

    async def create_account(
        self,
        workspace_id: int,
        name: str,
        template: AccountTemplate,
    ) -> Account:
        async with self.db.transaction():
            cursor = await self.db.execute(
                "INSERT INTO accounts (workspace_id, name, template) VALUES (?, ?, ?)",
                (workspace_id, name, template.value),
            )
        return Account(
            id=cursor.lastrowid,  # type: ignore[arg-type]
            workspace_id=workspace_id,
            name=name,
            template=template,
        )

    async def create_category(self, workspace_id: int, name: str) -> Category:
        async with self.db.transaction():
            cursor = await self.db.execute(
                "INSERT INTO categories (workspace_id, name) VALUES (?, ?)",
                (workspace_id, name),
            )
        return Category(id=cursor.lastrowid, workspace_id=workspace_id, name=name)  # type: ignore[arg-type]

    async def create_provider(
        self,
        workspace_id: int,
        name: str,
        cutoff_day: int,
        default_interest_rate: Decimal = Decimal("0"),
    ) -> LoanProvider:
        """대출 제공자 생성

        Raises:
            ValidationError: 이름 누락, 기준일 또는 이율 범위 오류
        """
        validate_provider_fields(name, cutoff_day, default_interest_rate)

        async with self.db.transaction():
            cursor = await self.db.execute(
                """
                INSERT INTO loan_providers (workspace_id, name, cutoff_day, default_interest_rate)
                VALUES (?, ?, ?, ?)
                """,
                (workspace_id, name, cutoff_day, str(default_interest_rate)),
            )
        return LoanProvider(
            id=cursor.lastrowid,  # type: ignore[arg-type]
            workspace_id=workspace_id,
            name=name,
            cutoff_day=cutoff_day,
            default_interest_rate=default_interest_rate,
        )
