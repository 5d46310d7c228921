"""
Slack 어댑터

Slack Webhook을 통한 원장 이벤트 전달.
IEventSink Protocol 준수.
"""

from adapters.slack.event_sink import SlackEventSink

__all__ = [
    "SlackEventSink",
]
