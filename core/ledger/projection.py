"""
Projection Generator

반복 템플릿을 월별 원장 항목으로 전개.

- 시작: 템플릿 시작일이 미래면 그날, 아니면 "오늘 이후" 첫 해당 일(월말 보정)
- 범위: 오늘 + horizon 개월, 템플릿 종료일로 제한
- 이미 항목이 있는 월과 제외된 월은 건너뜀 (멱등)
- 템플릿 수정 시 사용자가 수정하지 않은 항목만 새 값으로 갱신
"""

import logging
from dataclasses import replace
from datetime import date, datetime

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.events.publisher import NoOpEventPublisher
from adapters.interfaces import IEventPublisher
from core.constants import Defaults
from core.domain.errors import AccountNotFoundError
from core.domain.events import DomainEvent, EventActions, EventEntities
from core.domain.models import CreditCardData, LedgerEntry, RecurringTemplate
from core.domain.results import ProjectionResult, ResyncResult
from core.storage.entry_store import EntryStore
from core.storage.exclusion_store import ExclusionStore
from core.storage.lookup_store import LookupStore
from core.types import CCState, EntrySource, EntryType
from core.utils.dates import (
    actual_date,
    as_utc,
    month_key,
    month_start,
    now_utc,
    shift_date,
    to_date,
)

logger = logging.getLogger(__name__)


def first_candidate_date(template: RecurringTemplate, today: date) -> date:
    """첫 생성 후보 날짜

    Args:
        template: 반복 템플릿
        today: 기준일

    Returns:
        템플릿 시작일(미래인 경우) 또는 today 이후 첫 start_day (월말 보정)
    """
    if template.start_date > today:
        return template.start_date

    candidate = actual_date(today.year, today.month, template.start_day)
    if candidate <= today:
        candidate = shift_date(candidate, 1, day=template.start_day)
    return candidate


def horizon_end(template: RecurringTemplate, today: date, horizon_months: int) -> date:
    """생성 범위 끝 (종료일로 제한)"""
    end = shift_date(today, horizon_months)
    if template.end_date is not None and template.end_date < end:
        return template.end_date
    return end


def due_dates(template: RecurringTemplate, today: date, horizon_months: int) -> list[date]:
    """범위 내 모든 납부 예정일"""
    first = first_candidate_date(template, today)
    end = horizon_end(template, today, horizon_months)

    dates = []
    offset = 0
    current = first
    while current <= end:
        dates.append(current)
        offset += 1
        current = shift_date(first, offset, day=template.start_day)
    return dates


class ProjectionGenerator:
    """Projection 생성기

    Args:
        db: SQLiteAdapter 인스턴스
        entries: 원장 항목 저장소
        exclusions: 제외 월 저장소
        lookups: 계좌 조회
        publisher: 이벤트 발행자 (None이면 NoOp)
        horizon_months: 생성 범위 (개월)

    사용 예시:
    ```python
    generator = ProjectionGenerator(db, EntryStore(db), ExclusionStore(db), LookupStore(db))

    result = await generator.generate(template)
    print(result.created, result.skipped)
    ```
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        entries: EntryStore,
        exclusions: ExclusionStore,
        lookups: LookupStore,
        publisher: IEventPublisher | None = None,
        horizon_months: int = Defaults.HORIZON_MONTHS,
    ):
        self.db = db
        self.entries = entries
        self.exclusions = exclusions
        self.lookups = lookups
        self.publisher = publisher or NoOpEventPublisher()
        self.horizon_months = horizon_months

    # -------------------------------------------------------------------------
    # 생성
    # -------------------------------------------------------------------------

    async def _cc_data_for(self, template: RecurringTemplate) -> CreditCardData | None:
        account = await self.lookups.get_account(template.workspace_id, template.account_id)
        if account is None:
            raise AccountNotFoundError()
        if not account.is_credit_card:
            return None
        return CreditCardData.pending(template.settlement_intent)

    def _build_entry(
        self,
        template: RecurringTemplate,
        entry_date: date,
        cc: CreditCardData | None,
    ) -> LedgerEntry:
        return LedgerEntry(
            workspace_id=template.workspace_id,
            account_id=template.account_id,
            category_id=template.category_id,
            name=template.description,
            amount=template.amount,
            entry_type=EntryType.EXPENSE,
            entry_date=entry_date,
            source=EntrySource.RECURRING,
            is_paid=False,
            template_id=template.id,
            is_projected=True,
            cc=cc,
        )

    async def generate(
        self,
        template: RecurringTemplate,
        now: datetime | date | None = None,
        publish: bool = True,
    ) -> ProjectionResult:
        """템플릿의 누락된 월 항목 생성

        존재 확인과 삽입은 같은 트랜잭션 안에서 수행.
        동시 생성으로 유니크 인덱스에 걸린 월은 skipped로 집계.

        Args:
            template: 반복 템플릿 (id 필수)
            now: 기준 시각 (None이면 현재 UTC)
            publish: 생성 이벤트 발행 여부

        Returns:
            ProjectionResult

        Raises:
            AccountNotFoundError: 템플릿 계좌가 없음
        """
        assert template.id is not None
        today = to_date(now or now_utc())
        result = ProjectionResult(template_id=template.id)

        async with self.db.transaction():
            cc = await self._cc_data_for(template)

            for entry_date in due_dates(template, today, self.horizon_months):
                month = month_key(entry_date)

                if await self.entries.exists_for_month(template.workspace_id, template.id, month):
                    result.skipped += 1
                    continue

                if await self.exclusions.is_excluded(
                    template.workspace_id, template.id, month_start(entry_date)
                ):
                    logger.debug(
                        "제외된 월 건너뜀",
                        extra={"template_id": template.id, "month": month},
                    )
                    result.skipped += 1
                    continue

                created = await self.entries.insert_projection(
                    self._build_entry(template, entry_date, cc)
                )
                if created is None:
                    result.skipped += 1
                    continue

                result.created += 1
                result.entries.append(created)

        if result.created:
            logger.info(
                "Projection 생성",
                extra={
                    "workspace_id": template.workspace_id,
                    "template_id": template.id,
                    "created": result.created,
                    "skipped": result.skipped,
                },
            )
            if publish:
                self.publisher.publish(self.batch_created_event(template, result))

        return result

    @staticmethod
    def batch_created_event(template: RecurringTemplate, result: ProjectionResult) -> DomainEvent:
        return DomainEvent.create(
            EventEntities.PROJECTION,
            EventActions.BATCH_CREATED,
            template.workspace_id,
            {
                "template_id": template.id,
                "created": result.created,
                "months": [entry.month_key for entry in result.entries],
            },
        )

    # -------------------------------------------------------------------------
    # 수정 후 재동기화
    # -------------------------------------------------------------------------

    async def resync(
        self,
        old: RecurringTemplate,
        new: RecurringTemplate,
        now: datetime | date | None = None,
    ) -> ResyncResult:
        """템플릿 수정 후 projection 재동기화

        이전 템플릿 값과 다른 항목(사용자 수정)은 그대로 두고,
        나머지는 새 값으로 갱신 (지급 여부와 CC 청구 정보 유지).
        이후 종료일 이후 항목 정리 및 누락 월 생성.

        Args:
            old: 수정 전 템플릿
            new: 수정 후 템플릿 (같은 id)
            now: 기준 시각

        Returns:
            ResyncResult
        """
        assert new.id is not None and old.id == new.id
        result = ResyncResult(template_id=new.id)
        stamp = as_utc(now) if isinstance(now, datetime) else now_utc()

        async with self.db.transaction():
            new_cc = await self._cc_data_for(new)
            existing = await self.entries.list_by_template(
                new.workspace_id, new.id, projected_only=True
            )

            for entry in existing:
                if old.differs_from(entry):
                    entry.is_modified = True
                    result.preserved += 1
                    continue

                refreshed = replace(
                    entry,
                    name=new.description,
                    amount=new.amount,
                    category_id=new.category_id,
                    account_id=new.account_id,
                    cc=self._carry_cc(entry, new_cc, stamp),
                )
                await self.entries.update_core_fields(refreshed)
                result.updated += 1

            if new.end_date is not None:
                result.removed = await self.entries.delete_projected_after(
                    new.workspace_id, new.id, new.end_date
                )

            generated = await self.generate(new, now=now, publish=False)
            result.created = generated.created

        logger.info(
            "Projection 재동기화",
            extra={
                "workspace_id": new.workspace_id,
                "template_id": new.id,
                "updated": result.updated,
                "preserved": result.preserved,
                "created": result.created,
                "removed": result.removed,
            },
        )
        return result

    @staticmethod
    def _carry_cc(
        entry: LedgerEntry,
        new_cc: CreditCardData | None,
        stamp: datetime,
    ) -> CreditCardData | None:
        """계좌 변경 후 CC 데이터

        카드 → 카드: 기존 청구 정보 유지
        일반 → 카드: 미납이면 PENDING, 지급 완료면 SETTLED
        카드 → 일반: 없음
        """
        if new_cc is None:
            return None
        if entry.cc is not None:
            return entry.cc
        if entry.is_paid:
            return CreditCardData(state=CCState.SETTLED, intent=new_cc.intent, billed_at=stamp)
        return new_cc

    # -------------------------------------------------------------------------
    # 정리 / 조회 보조
    # -------------------------------------------------------------------------

    async def cleanup_beyond_end(
        self,
        workspace_id: int,
        template_id: int,
        end_date: date,
    ) -> int:
        """종료일 이후의 미납 projection 삭제

        Returns:
            삭제된 항목 수
        """
        removed = await self.entries.delete_projected_after(workspace_id, template_id, end_date)
        if removed:
            logger.info(
                "종료일 이후 projection 삭제",
                extra={"template_id": template_id, "removed": removed},
            )
        return removed

    @staticmethod
    def enrich_modified(
        entries: list[LedgerEntry],
        templates: dict[int, RecurringTemplate],
    ) -> list[LedgerEntry]:
        """템플릿 대비 수정 여부(is_modified) 계산

        템플릿이 없거나 연결되지 않은 항목은 False.
        """
        for entry in entries:
            template = templates.get(entry.template_id) if entry.template_id else None
            entry.is_modified = template is not None and template.differs_from(entry)
        return entries
