"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from decimal import Decimal
from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → 프로젝트 루트)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class Defaults:
    """기본값 상수"""

    # Projection 생성 범위 (개월)
    HORIZON_MONTHS: int = 12

    # CC 항목의 기본 정산 의도
    SETTLEMENT_INTENT: str = "deferred"

    # 청구 후 이 개월 수가 지나도 미정산이면 연체로 간주
    OVERDUE_MONTHS: int = 2

    # 정산 이체 항목 이름
    SETTLEMENT_ENTRY_NAME: str = "CC Settlement"

    # 카드 대금 납부 항목 이름
    CC_PAYMENT_ENTRY_NAME: str = "CC Payment"

    # 이벤트 발행 큐 크기
    EVENT_QUEUE_SIZE: int = 100

    SLACK_USERNAME: str = "Ledger"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"


class Limits:
    """입력 검증 한계값"""

    TEMPLATE_DESCRIPTION_MAX: int = 255
    LOAN_ITEM_NAME_MAX: int = 200
    ENTRY_NOTES_MAX: int = 1000

    CUTOFF_DAY_MIN: int = 1
    CUTOFF_DAY_MAX: int = 31

    INTEREST_RATE_MIN: Decimal = Decimal("0")
    INTEREST_RATE_MAX: Decimal = Decimal("100")


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"
    WORKER_LOGS_DIR: Path = LOGS_DIR / "worker"

    # 설정 파일
    SETTINGS_FILE: Path = CONFIG_DIR / "settings.yaml"

    # DB 파일
    LEDGER_DB: Path = DATA_DIR / "ledger.db"
