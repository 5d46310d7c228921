"""
CC 정산 엔진

청구된(BILLED) DEFERRED 카드 항목을 일반 계좌에서의 이체 1건으로 정산.

사전 조건 (순서대로 검사, 각각 별도 오류):
1. 항목 ID 목록이 비어 있지 않음
2. 출금 계좌가 존재하고 카드 계좌가 아님
3. 대상 계좌가 존재하고 카드 계좌임
4. 모든 ID가 workspace 안에 존재
5. 모든 항목이 BILLED
6. 모든 항목의 정산 의도가 DEFERRED

이체 생성과 상태 전이는 단일 트랜잭션.
"""

import logging
import uuid
from datetime import datetime

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.events.publisher import NoOpEventPublisher
from adapters.interfaces import IEventPublisher
from core.constants import Defaults
from core.domain.errors import (
    EmptySettlementError,
    InvalidSourceAccountError,
    InvalidTargetAccountError,
    TransactionNotBilledError,
    TransactionNotDeferredError,
    TransactionsNotFoundError,
)
from core.domain.events import DomainEvent, EventActions, EventEntities
from core.domain.models import LedgerEntry
from core.domain.results import SettlementResult
from core.storage.entry_store import EntryStore, sum_amounts
from core.storage.lookup_store import LookupStore
from core.types import CCState, EntrySource, EntryType, SettlementIntent
from core.utils.dates import as_utc

logger = logging.getLogger(__name__)


class SettlementEngine:
    """CC 정산 엔진

    Args:
        db: SQLiteAdapter 인스턴스
        entries: 원장 항목 저장소
        lookups: 계좌 조회
        publisher: 이벤트 발행자

    사용 예시:
    ```python
    engine = SettlementEngine(db, EntryStore(db), LookupStore(db), publisher)

    result = await engine.settle(
        workspace_id,
        entry_ids=[11, 12],
        source_account_id=bank.id,
        target_card_account_id=card.id,
    )
    print(result.settled_count, result.total_amount)
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
        self.publisher = publisher or NoOpEventPublisher()

    async def _validate(
        self,
        workspace_id: int,
        entry_ids: list[int],
        source_account_id: int,
        target_card_account_id: int,
    ) -> list[LedgerEntry]:
        if not entry_ids:
            raise EmptySettlementError()

        source = await self.lookups.get_account(workspace_id, source_account_id)
        if source is None or source.is_credit_card:
            raise InvalidSourceAccountError()

        target = await self.lookups.get_account(workspace_id, target_card_account_id)
        if target is None or not target.is_credit_card:
            raise InvalidTargetAccountError()

        entries = await self.entries.get_by_ids(workspace_id, entry_ids)
        if len(entries) != len(entry_ids):
            raise TransactionsNotFoundError()

        for entry in entries:
            if entry.cc_state != CCState.BILLED:
                raise TransactionNotBilledError()
            if entry.settlement_intent != SettlementIntent.DEFERRED:
                raise TransactionNotDeferredError()

        return entries

    async def settle(
        self,
        workspace_id: int,
        entry_ids: list[int],
        source_account_id: int,
        target_card_account_id: int,
        now: datetime | None = None,
    ) -> SettlementResult:
        """정산 실행

        Returns:
            SettlementResult

        Raises:
            EmptySettlementError, InvalidSourceAccountError, InvalidTargetAccountError,
            TransactionsNotFoundError, TransactionNotBilledError, TransactionNotDeferredError:
                사전 조건 위반 (쓰기 없음)
            SettlementAtomicityError: 일부 항목만 전이됨 (이체 포함 전체 롤백)
        """
        settled_at = as_utc(now)

        # 검증 조회와 쓰기를 같은 트랜잭션에서 (동시 정산은 직렬화됨)
        async with self.db.transaction():
            entries = await self._validate(
                workspace_id, entry_ids, source_account_id, target_card_account_id
            )

            total = sum_amounts(entries)
            transfer = LedgerEntry(
                workspace_id=workspace_id,
                account_id=source_account_id,
                name=Defaults.SETTLEMENT_ENTRY_NAME,
                amount=total,
                entry_type=EntryType.EXPENSE,
                entry_date=settled_at.date(),
                source=EntrySource.MANUAL,
                is_paid=True,
                transfer_pair_id=str(uuid.uuid4()),
                is_cc_payment=True,
            )

            transfer = await self.entries.settle(workspace_id, transfer, entry_ids)
            assert transfer.id is not None

        result = SettlementResult(
            transfer_id=transfer.id,
            settled_count=len(entries),
            total_amount=total,
            settled_at=settled_at,
        )

        logger.info(
            "CC 정산 완료",
            extra={
                "workspace_id": workspace_id,
                "transfer_id": transfer.id,
                "settled_count": result.settled_count,
                "total_amount": str(total),
            },
        )
        self.publisher.publish(
            DomainEvent.create(
                EventEntities.SETTLEMENT,
                EventActions.CREATED,
                workspace_id,
                result.to_dict(),
            )
        )
        return result
