"""
Mock 이벤트 싱크 테스트
"""

import pytest

from adapters.mock.event_sink import MockEventSink, RecordingEventPublisher
from core.domain.events import DomainEvent


class TestMockEventSink:
    """MockEventSink 테스트"""

    @pytest.mark.asyncio
    async def test_records_deliveries(self) -> None:
        sink = MockEventSink()

        assert await sink.send(DomainEvent.create("loan", "created", 1)) is True
        assert await sink.send(DomainEvent.create("loan", "deleted", 1)) is True

        assert sink.event_types == ["loan.created", "loan.deleted"]
        assert sink.last_event.action == "deleted"
        assert len(sink.get_by_type("loan.created")) == 1

    @pytest.mark.asyncio
    async def test_should_fail(self) -> None:
        """실패 모드: 기록은 하지만 False 반환"""
        sink = MockEventSink(should_fail=True)

        assert await sink.send(DomainEvent.create("loan", "created", 1)) is False
        assert sink.deliveries[0].sent is False

    @pytest.mark.asyncio
    async def test_should_raise(self) -> None:
        sink = MockEventSink(should_raise=True)

        with pytest.raises(RuntimeError):
            await sink.send(DomainEvent.create("loan", "created", 1))

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        sink = MockEventSink()
        await sink.send(DomainEvent.create("loan", "created", 1))

        sink.clear()

        assert sink.events == []
        assert sink.last_event is None


class TestRecordingEventPublisher:
    """RecordingEventPublisher 테스트"""

    def test_records_synchronously(self) -> None:
        publisher = RecordingEventPublisher()

        publisher.publish(DomainEvent.create("settlement", "created", 3, {"settled_count": 2}))

        assert publisher.event_types == ["settlement.created"]
        assert publisher.get_by_type("settlement.created")[0].payload == {"settled_count": 2}
