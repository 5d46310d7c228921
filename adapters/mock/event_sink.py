"""
Mock 이벤트 싱크

테스트용 Mock EventSink.
IEventSink Protocol 준수.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from core.domain.events import DomainEvent


@dataclass
class DeliveryRecord:
    """전달 기록"""

    event: DomainEvent
    timestamp: datetime
    sent: bool


class MockEventSink:
    """Mock 이벤트 싱크

    IEventSink Protocol 구현.
    전달된 모든 이벤트를 기록하여 테스트에서 검증 가능.

    사용 예시:
    ```python
    sink = MockEventSink()

    await sink.send(DomainEvent.create("settlement", "created", 1, {}))

    assert sink.event_types == ["settlement.created"]
    ```
    """

    def __init__(self, should_fail: bool = False, should_raise: bool = False):
        """
        Args:
            should_fail: True면 모든 전달 실패 (False 반환)
            should_raise: True면 전달 시 예외 발생
        """
        self.should_fail = should_fail
        self.should_raise = should_raise
        self.deliveries: list[DeliveryRecord] = []

    async def send(self, event: DomainEvent) -> bool:
        """이벤트 전달"""
        if self.should_raise:
            raise RuntimeError("mock sink failure")

        self.deliveries.append(
            DeliveryRecord(
                event=event,
                timestamp=datetime.now(timezone.utc),
                sent=not self.should_fail,
            )
        )
        return not self.should_fail

    # -------------------------------------------------------------------------
    # 테스트 헬퍼 메서드
    # -------------------------------------------------------------------------

    def clear(self) -> None:
        """전달 기록 초기화"""
        self.deliveries.clear()

    @property
    def events(self) -> list[DomainEvent]:
        return [d.event for d in self.deliveries]

    @property
    def event_types(self) -> list[str]:
        return [d.event.event_type for d in self.deliveries]

    def get_by_type(self, event_type: str) -> list[DomainEvent]:
        """특정 타입의 이벤트 조회"""
        return [e for e in self.events if e.event_type == event_type]

    @property
    def last_event(self) -> DomainEvent | None:
        """마지막 이벤트"""
        return self.deliveries[-1].event if self.deliveries else None


class RecordingEventPublisher:
    """발행된 이벤트를 동기적으로 기록하는 발행자 (서비스 테스트용)

    IEventPublisher Protocol 구현.
    """

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    @property
    def event_types(self) -> list[str]:
        return [e.event_type for e in self.events]

    def get_by_type(self, event_type: str) -> list[DomainEvent]:
        return [e for e in self.events if e.event_type == event_type]
