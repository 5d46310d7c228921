"""
이벤트 발행

서비스 작업을 블로킹하지 않는 best-effort 이벤트 전달.
"""

from adapters.events.publisher import AsyncEventPublisher, NoOpEventPublisher

__all__ = [
    "AsyncEventPublisher",
    "NoOpEventPublisher",
]
