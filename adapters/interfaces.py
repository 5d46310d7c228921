"""
어댑터 인터페이스 정의

Protocol 기반으로 정의하여 의존성 주입 및 Mock 교체 가능.
모든 구현체는 이 Protocol을 준수해야 함.
"""

from typing import Protocol, runtime_checkable

from core.domain.events import DomainEvent


@runtime_checkable
class IEventSink(Protocol):
    """이벤트 알림 싱크 인터페이스

    Slack Webhook 등 외부 알림 대상.
    """

    async def send(self, event: DomainEvent) -> bool:
        """이벤트 전달

        Args:
            event: 도메인 이벤트

        Returns:
            전달 성공 여부
        """
        ...


@runtime_checkable
class IEventPublisher(Protocol):
    """이벤트 발행 인터페이스

    서비스가 호출하는 발행 지점. fire-and-forget:
    호출자를 블로킹하지 않고 예외를 던지지 않음.
    """

    def publish(self, event: DomainEvent) -> None:
        """이벤트 발행 (best-effort, at-most-once)"""
        ...
