"""
대출 스케줄 계산

순수 함수만 포함 (DB 접근 없음).
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from core.domain.results import ScheduledPayment
from core.utils.dates import add_months

CENT = Decimal("0.01")


def round2(value: Decimal) -> Decimal:
    """소수점 둘째 자리 반올림 (ROUND_HALF_UP)"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_monthly_payment(
    total: Decimal,
    annual_rate_percent: Decimal,
    months: int,
) -> Decimal:
    """월 납부액 계산

    round2(total × (1 + rate/100) / months). months ≤ 0이면 0.

    사용 예시:
    ```python
    calculate_monthly_payment(Decimal("1000"), Decimal("10"), 10)  # Decimal("110.00")
    ```
    """
    if months <= 0:
        return Decimal("0")
    total_with_interest = Decimal(total) * (Decimal(1) + Decimal(annual_rate_percent) / Decimal(100))
    return round2(total_with_interest / Decimal(months))


def calculate_total_with_interest(total: Decimal, annual_rate_percent: Decimal) -> Decimal:
    return round2(Decimal(total) * (Decimal(1) + Decimal(annual_rate_percent) / Decimal(100)))


def calculate_first_due_month(purchase_date: date, cutoff_day: int) -> tuple[int, int]:
    """첫 납부 월 계산

    구매일이 기준일보다 엄격히 앞이면 구매 월, 같거나 뒤면 다음 달.

    Returns:
        (year, month)
    """
    if purchase_date.day < cutoff_day:
        return purchase_date.year, purchase_date.month
    return add_months(purchase_date.year, purchase_date.month, 1)


def build_schedule(
    first_year: int,
    first_month: int,
    months: int,
    monthly_payment: Decimal,
    custom_amounts: list[Decimal] | None = None,
) -> list[ScheduledPayment]:
    """N개월 납부 스케줄 생성

    custom_amounts가 정확히 months개면 그대로 사용 (합계 검증 없음).
    """
    use_custom = custom_amounts is not None and len(custom_amounts) == months

    schedule = []
    for i in range(months):
        year, month = add_months(first_year, first_month, i)
        amount = Decimal(custom_amounts[i]) if use_custom else monthly_payment  # type: ignore[index]
        schedule.append(ScheduledPayment(year=year, month=month, amount=amount))
    return schedule
