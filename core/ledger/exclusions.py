"""
Projection 제외 추적

사용자가 projection 항목을 삭제하면 해당 (템플릿, 월)을 기록해서
재생성 시 되살아나지 않도록 함.
"""

import logging
from datetime import date

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.events.publisher import NoOpEventPublisher
from adapters.interfaces import IEventPublisher
from core.domain.errors import EntryNotFoundError, TemplateNotFoundError
from core.domain.events import DomainEvent, EventActions, EventEntities
from core.storage.entry_store import EntryStore
from core.storage.exclusion_store import ExclusionStore
from core.storage.template_store import TemplateStore
from core.utils.dates import month_start

logger = logging.getLogger(__name__)


class ExclusionTracker:
    """Projection 제외 추적기

    Args:
        db: SQLiteAdapter 인스턴스
        entries: 원장 항목 저장소
        exclusions: 제외 월 저장소
        publisher: 이벤트 발행자
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        entries: EntryStore,
        exclusions: ExclusionStore,
        publisher: IEventPublisher | None = None,
    ):
        self.db = db
        self.entries = entries
        self.exclusions = exclusions
        self.templates = TemplateStore(db)
        self.publisher = publisher or NoOpEventPublisher()

    async def delete_projected_entry(self, workspace_id: int, entry_id: int) -> bool:
        """항목 삭제 (projection이면 제외 월 기록)

        템플릿에 연결된 projection 항목은 삭제와 제외 기록을 한 트랜잭션으로 처리.
        실제 항목이나 템플릿 없는 항목은 단순 삭제.

        Returns:
            제외 월이 새로 기록됐는지 여부

        Raises:
            EntryNotFoundError: 항목이 없거나 다른 workspace 소유
        """
        entry = await self.entries.get(workspace_id, entry_id)
        if entry is None:
            raise EntryNotFoundError()

        excluded = False
        async with self.db.transaction():
            if entry.is_projected and entry.template_id is not None:
                excluded = await self.exclusions.add(
                    workspace_id, entry.template_id, month_start(entry.entry_date)
                )
            await self.entries.delete(workspace_id, entry_id)

        logger.info(
            "항목 삭제",
            extra={
                "workspace_id": workspace_id,
                "entry_id": entry_id,
                "template_id": entry.template_id,
                "excluded_month": entry.month_key if excluded else None,
            },
        )
        self.publisher.publish(
            DomainEvent.create(
                EventEntities.TRANSACTION,
                EventActions.DELETED,
                workspace_id,
                {"id": entry_id, "template_id": entry.template_id},
            )
        )
        return excluded

    async def restore_month(self, workspace_id: int, template_id: int, month: date) -> bool:
        """제외 해제 (다음 생성 시 해당 월 다시 생성)

        Returns:
            제외 기록이 있었는지 여부

        Raises:
            TemplateNotFoundError: 템플릿 없음
        """
        if await self.templates.get(workspace_id, template_id) is None:
            raise TemplateNotFoundError()

        removed = await self.exclusions.remove(workspace_id, template_id, month)
        if removed:
            logger.info(
                "제외 월 해제",
                extra={"template_id": template_id, "month": month_start(month).isoformat()},
            )
        return removed
