"""
이벤트 발행자

서비스 작업을 블로킹하지 않는 best-effort 이벤트 전달.
- 크기 제한 큐에 넣고 백그라운드 태스크가 싱크로 전달
- 큐가 가득 찼거나 실행 중이 아니면 버림 (at-most-once)
- 싱크 실패는 로그만 남기고 호출자에게 전파하지 않음
"""

import asyncio
import logging

from adapters.interfaces import IEventSink
from core.constants import Defaults
from core.domain.events import DomainEvent

logger = logging.getLogger(__name__)


class NoOpEventPublisher:
    """아무것도 하지 않는 발행자 (싱크 미설정 시 기본값)"""

    def publish(self, event: DomainEvent) -> None:
        logger.debug("이벤트 무시 (NoOp)", extra={"event_type": event.event_type})


class AsyncEventPublisher:
    """비동기 이벤트 발행자

    IEventPublisher Protocol 구현.

    Args:
        sink: 이벤트 싱크
        max_queue_size: 큐 최대 크기

    사용 예시:
    ```python
    publisher = AsyncEventPublisher(SlackEventSink(webhook_url))
    await publisher.start()

    publisher.publish(event)  # 즉시 반환

    await publisher.stop()  # 남은 이벤트 전달 후 종료
    ```
    """

    def __init__(self, sink: IEventSink, max_queue_size: int = Defaults.EVENT_QUEUE_SIZE):
        if max_queue_size <= 0:
            raise ValueError("max_queue_size는 양수여야 합니다")

        self.sink = sink
        self.max_queue_size = max_queue_size

        self._queue: asyncio.Queue[DomainEvent] | None = None
        self._task: asyncio.Task[None] | None = None

        self.delivered_count = 0
        self.failed_count = 0
        self.dropped_count = 0

    @property
    def is_running(self) -> bool:
        """전달 태스크 실행 여부"""
        return self._task is not None and not self._task.done()

    @property
    def pending_count(self) -> int:
        """전달 대기 중인 이벤트 수"""
        return self._queue.qsize() if self._queue is not None else 0

    async def start(self) -> None:
        """전달 태스크 시작"""
        if self.is_running:
            return

        self._queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._task = asyncio.create_task(self._run(), name="event-publisher")
        logger.info("이벤트 발행자 시작", extra={"max_queue_size": self.max_queue_size})

    async def stop(self, drain: bool = True) -> None:
        """전달 태스크 종료

        Args:
            drain: True면 큐에 남은 이벤트를 모두 전달한 뒤 종료
        """
        if self._task is None or self._queue is None:
            return

        if drain and self.is_running:
            await self._queue.join()

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

        remaining = self._queue.qsize()
        if remaining:
            self.dropped_count += remaining
            logger.warning("종료 시 미전달 이벤트 버림", extra={"dropped": remaining})

        self._task = None
        self._queue = None
        logger.info(
            "이벤트 발행자 종료",
            extra={
                "delivered": self.delivered_count,
                "failed": self.failed_count,
                "dropped": self.dropped_count,
            },
        )

    def publish(self, event: DomainEvent) -> None:
        """이벤트 발행 (즉시 반환, 예외 없음)"""
        if self._queue is None or not self.is_running:
            self.dropped_count += 1
            logger.warning(
                "발행자 미실행: 이벤트 버림",
                extra={"event_type": event.event_type},
            )
            return

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped_count += 1
            logger.warning(
                "이벤트 큐 가득 참: 이벤트 버림",
                extra={"event_type": event.event_type, "max_queue_size": self.max_queue_size},
            )

    async def _run(self) -> None:
        assert self._queue is not None
        queue = self._queue

        while True:
            event = await queue.get()
            try:
                await self._deliver(event)
            finally:
                queue.task_done()

    async def _deliver(self, event: DomainEvent) -> None:
        try:
            sent = await self.sink.send(event)
        except Exception:
            self.failed_count += 1
            logger.warning(
                "이벤트 전달 예외",
                extra={"event_type": event.event_type},
                exc_info=True,
            )
            return

        if sent:
            self.delivered_count += 1
        else:
            self.failed_count += 1
            logger.warning("이벤트 전달 실패", extra={"event_type": event.event_type})
