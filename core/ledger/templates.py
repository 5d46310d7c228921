"""
반복 템플릿 서비스

템플릿 생성/수정/삭제와 projection 전개를 하나의 작업 단위로 묶음.
"""

import logging
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.events.publisher import NoOpEventPublisher
from adapters.interfaces import IEventPublisher
from core.constants import Limits
from core.domain.errors import (
    AccountNotFoundError,
    CategoryNotFoundError,
    LinkedEntryNotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from core.domain.events import DomainEvent, EventActions, EventEntities
from core.domain.models import RecurringTemplate
from core.domain.results import ProjectionResult, ResyncResult, TemplateInput
from core.ledger.projection import ProjectionGenerator
from core.storage.entry_store import EntryStore
from core.storage.lookup_store import LookupStore
from core.storage.template_store import TemplateStore
from core.types import Frequency, SettlementIntent

logger = logging.getLogger(__name__)


def parse_settlement_intent(value: str | None) -> SettlementIntent | None:
    """정산 의도 문자열 검증 (빈 값은 None)"""
    if not value:
        return None
    try:
        return SettlementIntent(value)
    except ValueError:
        raise ValidationError(
            "settlement intent must be 'immediate' or 'deferred'",
            field="settlement_intent",
        ) from None


def validate_template_input(data: TemplateInput) -> tuple[Frequency, SettlementIntent | None]:
    """템플릿 입력 검증

    Returns:
        (frequency, settlement_intent)

    Raises:
        ValidationError: 입력 오류
    """
    description = (data.description or "").strip()
    if not description:
        raise ValidationError("description is required", field="description")
    if len(description) > Limits.TEMPLATE_DESCRIPTION_MAX:
        raise ValidationError(
            f"description must be {Limits.TEMPLATE_DESCRIPTION_MAX} characters or less",
            field="description",
        )
    if Decimal(data.amount) <= 0:
        raise ValidationError("amount must be positive", field="amount")

    try:
        frequency = Frequency(data.frequency)
    except ValueError:
        raise ValidationError("frequency must be 'monthly'", field="frequency") from None

    if data.end_date is not None and data.end_date < data.start_date:
        raise ValidationError("end date must be on or after start date", field="end_date")

    return frequency, parse_settlement_intent(data.settlement_intent)


class RecurringTemplateService:
    """반복 템플릿 서비스

    Args:
        db: SQLiteAdapter 인스턴스
        generator: Projection 생성기
        publisher: 이벤트 발행자

    사용 예시:
    ```python
    service = RecurringTemplateService(db, generator)

    template, result = await service.create_template(workspace_id, TemplateInput(
        description="Rent",
        amount=Decimal("1200"),
        category_id=category.id,
        account_id=bank.id,
        start_date=date(2026, 1, 31),
    ))
    ```
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        generator: ProjectionGenerator,
        publisher: IEventPublisher | None = None,
    ):
        self.db = db
        self.generator = generator
        self.templates = TemplateStore(db)
        self.entries: EntryStore = generator.entries
        self.lookups: LookupStore = generator.lookups
        self.publisher = publisher or NoOpEventPublisher()

    async def _check_references(self, workspace_id: int, data: TemplateInput) -> None:
        if await self.lookups.get_account(workspace_id, data.account_id) is None:
            raise AccountNotFoundError()
        if await self.lookups.get_category(workspace_id, data.category_id) is None:
            raise CategoryNotFoundError()

    async def _get_or_raise(self, workspace_id: int, template_id: int) -> RecurringTemplate:
        template = await self.templates.get(workspace_id, template_id)
        if template is None:
            raise TemplateNotFoundError()
        return template

    # -------------------------------------------------------------------------
    # 생성 / 수정 / 삭제
    # -------------------------------------------------------------------------

    async def create_template(
        self,
        workspace_id: int,
        data: TemplateInput,
        now: datetime | date | None = None,
    ) -> tuple[RecurringTemplate, ProjectionResult]:
        """템플릿 생성 + 기존 항목 연결 + projection 생성 (단일 트랜잭션)

        Raises:
            ValidationError: 입력 오류
            AccountNotFoundError / CategoryNotFoundError: 참조 대상 없음
            LinkedEntryNotFoundError: 연결할 항목 없음
        """
        frequency, intent = validate_template_input(data)
        await self._check_references(workspace_id, data)

        async with self.db.transaction():
            template = await self.templates.insert(
                RecurringTemplate(
                    workspace_id=workspace_id,
                    description=data.description.strip(),
                    amount=Decimal(data.amount),
                    category_id=data.category_id,
                    account_id=data.account_id,
                    start_date=data.start_date,
                    end_date=data.end_date,
                    frequency=frequency,
                    settlement_intent=intent,
                )
            )
            assert template.id is not None

            if data.link_transaction_id is not None:
                linked = await self.entries.link_to_template(
                    workspace_id, data.link_transaction_id, template.id
                )
                if not linked:
                    raise LinkedEntryNotFoundError()

            result = await self.generator.generate(template, now=now, publish=False)

        logger.info(
            "반복 템플릿 생성",
            extra={
                "workspace_id": workspace_id,
                "template_id": template.id,
                "projections": result.created,
            },
        )
        self.publisher.publish(
            DomainEvent.create(
                EventEntities.RECURRING,
                EventActions.CREATED,
                workspace_id,
                {"template_id": template.id, "description": template.description},
            )
        )
        if result.created:
            self.publisher.publish(self.generator.batch_created_event(template, result))

        return template, result

    async def update_template(
        self,
        workspace_id: int,
        template_id: int,
        data: TemplateInput,
        now: datetime | date | None = None,
    ) -> tuple[RecurringTemplate, ResyncResult]:
        """템플릿 수정 + projection 재동기화 (단일 트랜잭션)

        사용자가 수정한 projection은 유지.
        """
        frequency, intent = validate_template_input(data)
        old = await self._get_or_raise(workspace_id, template_id)
        await self._check_references(workspace_id, data)

        new = replace(
            old,
            description=data.description.strip(),
            amount=Decimal(data.amount),
            category_id=data.category_id,
            account_id=data.account_id,
            start_date=data.start_date,
            end_date=data.end_date,
            frequency=frequency,
            settlement_intent=intent,
        )

        async with self.db.transaction():
            await self.templates.update(new)
            result = await self.generator.resync(old, new, now=now)

        self.publisher.publish(
            DomainEvent.create(
                EventEntities.RECURRING,
                EventActions.UPDATED,
                workspace_id,
                {
                    "template_id": template_id,
                    "updated": result.updated,
                    "preserved": result.preserved,
                    "created": result.created,
                },
            )
        )
        return new, result

    async def delete_template(self, workspace_id: int, template_id: int) -> int:
        """템플릿 삭제

        projection 항목은 삭제, 실제 항목은 연결만 해제, 제외 기록은 함께 삭제됨.

        Returns:
            삭제된 projection 수
        """
        await self._get_or_raise(workspace_id, template_id)

        async with self.db.transaction():
            removed = await self.entries.delete_projected_by_template(workspace_id, template_id)
            orphaned = await self.entries.orphan_by_template(workspace_id, template_id)
            await self.templates.delete(workspace_id, template_id)

        logger.info(
            "반복 템플릿 삭제",
            extra={
                "workspace_id": workspace_id,
                "template_id": template_id,
                "removed": removed,
                "orphaned": orphaned,
            },
        )
        self.publisher.publish(
            DomainEvent.create(
                EventEntities.RECURRING,
                EventActions.DELETED,
                workspace_id,
                {"template_id": template_id, "removed": removed},
            )
        )
        return removed

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    async def get_template(self, workspace_id: int, template_id: int) -> RecurringTemplate:
        return await self._get_or_raise(workspace_id, template_id)

    async def list_templates(self, workspace_id: int) -> list[RecurringTemplate]:
        return await self.templates.list_by_workspace(workspace_id)
