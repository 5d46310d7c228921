"""
Event 도메인 모델

원장 상태 변경을 외부 알림 싱크로 전달하기 위한 도메인 이벤트.
event_type은 "<entity>.<action>" 형식 (예: settlement.created).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class EventEntities:
    """이벤트 엔티티 종류"""

    TRANSACTION = "transaction"
    RECURRING = "recurring"
    PROJECTION = "projection"
    SETTLEMENT = "settlement"
    LOAN = "loan"
    LOAN_PAYMENT = "loan_payment"


class EventActions:
    """이벤트 동작"""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    BILLED = "billed"
    SYNCED = "synced"
    BATCH_CREATED = "batch_created"
    BATCH_BILLED = "batch_billed"
    BATCH_PAID = "batch_paid"


@dataclass
class DomainEvent:
    """도메인 이벤트

    페이로드는 평범한 key/value (JSON 직렬화 가능 값만).
    """

    entity: str
    action: str
    workspace_id: int
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_type(self) -> str:
        return f"{self.entity}.{self.action}"

    @staticmethod
    def create(
        entity: str,
        action: str,
        workspace_id: int,
        payload: dict[str, Any] | None = None,
    ) -> "DomainEvent":
        """새 이벤트 생성

        Args:
            entity: 엔티티 종류 (EventEntities)
            action: 동작 (EventActions)
            workspace_id: 이벤트가 속한 workspace
            payload: 이벤트 상세 데이터

        Returns:
            새 DomainEvent 인스턴스
        """
        return DomainEvent(
            entity=entity,
            action=action,
            workspace_id=workspace_id,
            payload=dict(payload or {}),
            timestamp=datetime.now(timezone.utc),
        )

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환 (직렬화용)"""
        return {
            "type": self.event_type,
            "entity": self.entity,
            "workspace_id": self.workspace_id,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "DomainEvent":
        """딕셔너리에서 생성 (역직렬화용)"""
        ts = data["timestamp"]
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)

        entity, _, action = data["type"].partition(".")

        return DomainEvent(
            entity=data.get("entity", entity),
            action=action,
            workspace_id=data["workspace_id"],
            payload=data.get("payload", {}),
            timestamp=ts,
        )
