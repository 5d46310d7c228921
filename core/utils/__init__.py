"""
유틸리티 패키지

월 단위 날짜 계산(월말 보정), UTC 시각 등 공통 유틸리티
"""

from core.utils.dates import (
    actual_date,
    add_months,
    days_in_month,
    month_key,
    month_start,
    now_utc,
    shift_date,
    to_date,
)

__all__ = [
    "actual_date",
    "add_months",
    "days_in_month",
    "month_key",
    "month_start",
    "now_utc",
    "shift_date",
    "to_date",
]
