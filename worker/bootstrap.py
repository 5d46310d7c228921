"""
Worker Bootstrap

설정 로드, 로깅 설정, DB 연결, 의존성 조립 후 동기화 1회 실행.

종료 코드:
- 0: 전체 성공
- 1: 설정 로드 실패 또는 일부 템플릿 동기화 실패
"""

import logging
from pathlib import Path

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from adapters.events.publisher import AsyncEventPublisher, NoOpEventPublisher
from adapters.slack.event_sink import SlackEventSink
from core.config.loader import ConfigLoadError, LedgerConfig, get_settings
from core.domain.errors import SyncError
from core.ledger.projection import ProjectionGenerator
from core.logging import setup_logging
from core.storage.entry_store import EntryStore
from core.storage.exclusion_store import ExclusionStore
from core.storage.lookup_store import LookupStore

from worker.sync import ProjectionSyncJob

logger = logging.getLogger("worker")


def build_publisher(config: LedgerConfig) -> AsyncEventPublisher | NoOpEventPublisher:
    """이벤트 발행자 생성 (Slack webhook이 설정된 경우에만 실제 전달)"""
    if not config.slack_webhook_url:
        logger.info("Slack webhook_url이 설정되지 않아 이벤트 전달 비활성화")
        return NoOpEventPublisher()

    sink = SlackEventSink(
        webhook_url=config.slack_webhook_url,
        channel=config.slack_channel,
    )
    logger.info(f"SlackEventSink 생성 완료 (channel: {config.slack_channel or 'default'})")
    return AsyncEventPublisher(sink, max_queue_size=config.event_queue_size)


async def run_sync(config: LedgerConfig) -> int:
    """DB 연결 후 동기화 1회 실행

    Returns:
        종료 코드
    """
    publisher = build_publisher(config)
    if isinstance(publisher, AsyncEventPublisher):
        await publisher.start()

    try:
        async with SQLiteAdapter(config.db_path) as db:
            await init_schema(db)

            generator = ProjectionGenerator(
                db,
                EntryStore(db),
                ExclusionStore(db),
                LookupStore(db),
                publisher,
                horizon_months=config.horizon_months,
            )
            job = ProjectionSyncJob(generator, publisher)

            try:
                report = await job.sync_all()
            except SyncError as e:
                logger.error(e.message)
                for template_id, error in e.errors:
                    logger.error(f"  - template {template_id}: {error}")
                return 1

            logger.info(
                f"동기화 성공: 템플릿 {report.synced_templates}개, "
                f"생성 {report.created}건, 정리 {report.removed}건"
            )
            return 0
    finally:
        if isinstance(publisher, AsyncEventPublisher):
            await publisher.stop()
            await publisher.sink.close()  # type: ignore[attr-defined]


async def main(settings_path: Path | None = None) -> int:
    """Worker 메인 함수"""
    try:
        settings = get_settings(settings_path)
    except ConfigLoadError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"설정 로드 실패: {e}")
        return 1

    config = settings.config
    setup_logging(
        "worker",
        console_level=config.log_level_value,
        file_format=config.log_format,
    )

    logger.info("=" * 60)
    logger.info("Ledger projection 동기화 시작")
    logger.info(f"DB: {config.db_path}")
    logger.info("=" * 60)

    exit_code = await run_sync(config)

    logger.info(f"Ledger projection 동기화 종료 (exit={exit_code})")
    return exit_code
