"""
Slack 이벤트 싱크

Slack Webhook을 통해 원장 도메인 이벤트를 전달.
IEventSink Protocol 준수.
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Any

import httpx

from core.constants import Defaults
from core.domain.events import DomainEvent, EventActions

logger = logging.getLogger(__name__)


# 동작별 이모지 매핑
ACTION_EMOJI = {
    EventActions.CREATED: ":heavy_plus_sign:",
    EventActions.UPDATED: ":pencil2:",
    EventActions.DELETED: ":wastebasket:",
    EventActions.BILLED: ":receipt:",
    EventActions.BATCH_BILLED: ":receipt:",
    EventActions.BATCH_PAID: ":moneybag:",
    EventActions.BATCH_CREATED: ":calendar:",
    EventActions.SYNCED: ":arrows_counterclockwise:",
}

# 엔티티별 색상 매핑 (Slack attachment color)
ENTITY_COLOR = {
    "settlement": "#36A64F",    # 녹색
    "loan_payment": "#36A64F",
    "transaction": "#439FE0",   # 파란색
    "projection": "#808080",    # 회색
}


class SlackEventSink:
    """Slack 이벤트 싱크

    IEventSink Protocol 구현.
    이벤트 1건당 attachment 1개 전송. payload 키/값은 fields로 표시.

    사용 예시:
    ```python
    sink = SlackEventSink(webhook_url="https://hooks.slack.com/...")
    publisher = AsyncEventPublisher(sink)
    ```
    """

    def __init__(
        self,
        webhook_url: str,
        channel: str | None = None,
        username: str = Defaults.SLACK_USERNAME,
        timeout: float = 10.0,
    ):
        """
        Args:
            webhook_url: Slack Incoming Webhook URL
            channel: 채널 오버라이드 (기본값은 Webhook 설정 사용)
            username: 메시지 발송자 이름
            timeout: HTTP 요청 타임아웃 (초)
        """
        if not webhook_url:
            raise ValueError("webhook_url은 필수입니다")

        self.webhook_url = webhook_url
        self.channel = channel
        self.username = username
        self.timeout = timeout

        # httpx 비동기 클라이언트 (재사용)
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTP 클라이언트 반환 (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """HTTP 클라이언트 종료"""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def build_payload(self, event: DomainEvent) -> dict[str, Any]:
        """Slack 메시지 페이로드 구성"""
        emoji = ACTION_EMOJI.get(event.action, ":bell:")
        color = ENTITY_COLOR.get(event.entity, "#808080")

        fields = [
            {"title": "workspace", "value": str(event.workspace_id), "short": True},
        ]
        fields.extend(
            {"title": key, "value": str(value), "short": True}
            for key, value in event.payload.items()
        )

        payload: dict[str, Any] = {
            "username": self.username,
            "attachments": [
                {
                    "color": color,
                    "text": f"{emoji} *{event.event_type}*",
                    "fields": fields,
                    "footer": f"Ledger | {self._format_timestamp(event.timestamp)}",
                }
            ],
        }

        if self.channel:
            payload["channel"] = self.channel

        return payload

    async def send(self, event: DomainEvent) -> bool:
        """이벤트 전달

        Returns:
            전송 성공 여부
        """
        return await self._send_payload(self.build_payload(event))

    async def _send_payload(self, payload: dict[str, Any]) -> bool:
        """Slack Webhook으로 페이로드 전송

        Args:
            payload: Slack 메시지 페이로드

        Returns:
            전송 성공 여부
        """
        try:
            client = await self._get_client()
            response = await client.post(self.webhook_url, json=payload)

            if response.status_code == 200:
                logger.debug("Slack 이벤트 전송 성공")
                return True

            logger.warning(
                "Slack 이벤트 전송 실패: status=%s, body=%s",
                response.status_code,
                response.text,
            )
            return False

        except httpx.TimeoutException:
            logger.error("Slack 이벤트 전송 타임아웃")
            return False
        except httpx.HTTPError as e:
            logger.error("Slack 이벤트 전송 HTTP 에러: %s", e)
            return False

    def _format_timestamp(self, ts: datetime | None = None) -> str:
        """시각을 KST로 포맷"""
        utc_ts = ts or datetime.now(timezone.utc)
        kst_ts = utc_ts.astimezone(timezone(timedelta(hours=9)))
        return kst_ts.strftime("%Y-%m-%d %H:%M:%S KST")

    # -------------------------------------------------------------------------
    # Context Manager 지원
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SlackEventSink":
        """async with 진입"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """async with 종료 시 클라이언트 정리"""
        await self.close()
