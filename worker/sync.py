"""
Projection 일일 동기화

모든 workspace의 활성 템플릿에 대해 종료일 이후 정리 + horizon까지 생성.
템플릿별 실패는 수집하고 계속 진행, 마지막에 SyncError로 한 번에 보고.
"""

import logging
import time
from datetime import date, datetime

from adapters.events.publisher import NoOpEventPublisher
from adapters.interfaces import IEventPublisher
from core.domain.errors import SyncError
from core.domain.events import DomainEvent, EventActions, EventEntities
from core.domain.models import RecurringTemplate
from core.domain.results import SyncReport
from core.ledger.projection import ProjectionGenerator
from core.storage.template_store import TemplateStore
from core.utils.dates import now_utc

logger = logging.getLogger(__name__)


class ProjectionSyncJob:
    """Projection 동기화 작업

    내부 타이머 없음. 외부 스케줄러(cron 등)가 하루 한 번 실행.

    Args:
        generator: Projection 생성기
        publisher: 이벤트 발행자

    사용 예시:
    ```python
    job = ProjectionSyncJob(generator, publisher)

    try:
        report = await job.sync_all()
    except SyncError as e:
        logger.error(e.message)
        report = e.report
    ```
    """

    def __init__(
        self,
        generator: ProjectionGenerator,
        publisher: IEventPublisher | None = None,
    ):
        self.generator = generator
        self.db = generator.db
        self.templates = TemplateStore(generator.db)
        self.publisher = publisher or NoOpEventPublisher()

    async def _sync_template(
        self,
        template: RecurringTemplate,
        now: datetime | date,
    ) -> tuple[int, int]:
        """템플릿 1개 동기화 (단일 트랜잭션)

        Returns:
            (created, removed)
        """
        assert template.id is not None
        removed = 0

        async with self.db.transaction():
            if template.end_date is not None:
                removed = await self.generator.cleanup_beyond_end(
                    template.workspace_id, template.id, template.end_date
                )
            result = await self.generator.generate(template, now=now, publish=False)

        return result.created, removed

    async def sync_all(self, now: datetime | date | None = None) -> SyncReport:
        """전체 활성 템플릿 동기화

        Returns:
            SyncReport

        Raises:
            SyncError: 하나 이상의 템플릿 실패 (report와 템플릿별 예외 포함)
        """
        started = time.monotonic()
        now = now or now_utc()
        templates = await self.templates.list_active()

        report = SyncReport(total_templates=len(templates))
        errors: list[tuple[int, Exception]] = []

        logger.info("Projection 동기화 시작", extra={"templates": len(templates)})

        for template in templates:
            try:
                created, removed = await self._sync_template(template, now)
            except Exception as e:
                logger.error(
                    "템플릿 동기화 실패",
                    extra={"workspace_id": template.workspace_id, "template_id": template.id},
                    exc_info=True,
                )
                report.failed.append(template.id)  # type: ignore[arg-type]
                errors.append((template.id, e))  # type: ignore[arg-type]
                continue

            report.synced_templates += 1
            report.created += created
            report.removed += removed
            if created:
                report.created_by_workspace[template.workspace_id] = (
                    report.created_by_workspace.get(template.workspace_id, 0) + created
                )

        for workspace_id, created in sorted(report.created_by_workspace.items()):
            self.publisher.publish(
                DomainEvent.create(
                    EventEntities.PROJECTION,
                    EventActions.SYNCED,
                    workspace_id,
                    {"created": created},
                )
            )

        logger.info(
            "Projection 동기화 완료",
            extra={
                "templates": report.total_templates,
                "synced": report.synced_templates,
                "created": report.created,
                "removed": report.removed,
                "errors": len(errors),
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )

        if errors:
            raise SyncError(len(errors), len(templates), errors, report)

        return report
