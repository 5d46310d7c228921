"""
날짜 유틸리티

월 단위 계산 (월말 보정 포함) 및 UTC 현재 시각.

모든 타임스탬프는 UTC 기준으로 저장.
"""

import calendar
from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """현재 UTC 시각"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None = None) -> datetime:
    """UTC aware datetime으로 정규화

    None이면 현재 시각, naive면 UTC로 간주, 다른 시간대면 UTC로 변환.
    """
    if value is None:
        return now_utc()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_in_month(year: int, month: int) -> int:
    """해당 월의 일수"""
    return calendar.monthrange(year, month)[1]


def actual_date(year: int, month: int, day: int) -> date:
    """월말 보정된 날짜

    해당 월에 day가 없으면 말일로 보정.

    Args:
        year: 연도
        month: 월 (1-12)
        day: 목표 일

    Returns:
        보정된 date

    사용 예시:
    ```python
    actual_date(2026, 2, 31)  # date(2026, 2, 28)
    actual_date(2024, 2, 31)  # date(2024, 2, 29)
    actual_date(2026, 4, 31)  # date(2026, 4, 30)
    ```
    """
    return date(year, month, min(day, days_in_month(year, month)))


def add_months(year: int, month: int, months: int) -> tuple[int, int]:
    """(year, month)에 months 더하기 (음수 가능)"""
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def shift_date(value: date, months: int, day: int | None = None) -> date:
    """날짜를 months만큼 이동 (월말 보정)

    Args:
        value: 기준 날짜
        months: 이동할 개월 수
        day: 목표 일 (None이면 value.day)
    """
    year, month = add_months(value.year, value.month, months)
    return actual_date(year, month, day if day is not None else value.day)


def month_start(value: date) -> date:
    """해당 월 1일"""
    return date(value.year, value.month, 1)


def month_key(value: date) -> str:
    """YYYY-MM"""
    return f"{value.year:04d}-{value.month:02d}"


def to_date(value: date | datetime) -> date:
    """datetime이면 날짜 부분만"""
    if isinstance(value, datetime):
        return value.date()
    return value
