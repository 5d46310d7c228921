"""
설정 로더

settings.yaml 로드 및 원장 설정 생성
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from core.constants import Defaults, Paths, PROJECT_ROOT
from core.logging import VALID_LOG_FORMATS

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LedgerConfig:
    """원장 설정 (settings.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지
    """

    db_path: Path
    horizon_months: int = Defaults.HORIZON_MONTHS
    event_queue_size: int = Defaults.EVENT_QUEUE_SIZE
    slack_webhook_url: str | None = None
    slack_channel: str | None = None
    log_level: str = Defaults.LOG_LEVEL
    log_format: str = Defaults.LOG_FORMAT

    @property
    def log_level_value(self) -> int:
        """logging 모듈 레벨 값"""
        return logging.getLevelName(self.log_level)


class ConfigLoadError(Exception):
    """설정 로드 실패 예외"""

    pass


def _resolve_db_path(raw: Any) -> Path:
    """DB 경로 해석 (상대 경로는 프로젝트 루트 기준)"""
    if raw is None:
        return Paths.LEDGER_DB
    path = Path(str(raw))
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


def _positive_int(section: dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigLoadError(f"'{key}'는 양의 정수여야 합니다: {value!r}")
    return value


def load_config(path: Path | None = None) -> LedgerConfig:
    """settings.yaml 파일 로드

    Args:
        path: settings.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        LedgerConfig 인스턴스

    Raises:
        ConfigLoadError: 파일이 없거나 형식이 잘못된 경우
    """
    if path is None:
        path = Paths.SETTINGS_FILE

    if not path.exists():
        raise ConfigLoadError(f"settings.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"settings.yaml 파싱 실패: {e}") from e

    if data is None:
        raise ConfigLoadError("settings.yaml이 비어 있습니다")

    if not isinstance(data, dict):
        raise ConfigLoadError("settings.yaml 최상위는 매핑이어야 합니다")

    db_section = data.get("database") or {}
    ledger_section = data.get("ledger") or {}
    events_section = data.get("events") or {}
    logging_section = data.get("logging") or {}

    horizon_months = _positive_int(ledger_section, "horizon_months", Defaults.HORIZON_MONTHS)
    event_queue_size = _positive_int(events_section, "queue_size", Defaults.EVENT_QUEUE_SIZE)

    log_level = str(logging_section.get("level", Defaults.LOG_LEVEL)).upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ConfigLoadError(
            f"유효하지 않은 로그 레벨입니다: '{log_level}'. "
            f"유효한 값: {list(VALID_LOG_LEVELS)}"
        )

    log_format = str(logging_section.get("format", Defaults.LOG_FORMAT)).lower()
    if log_format not in VALID_LOG_FORMATS:
        raise ConfigLoadError(
            f"유효하지 않은 로그 형식입니다: '{log_format}'. "
            f"유효한 값: {list(VALID_LOG_FORMATS)}"
        )

    slack_section = events_section.get("slack") or {}
    webhook_url = slack_section.get("webhook_url") or None

    return LedgerConfig(
        db_path=_resolve_db_path(db_section.get("path")),
        horizon_months=horizon_months,
        event_queue_size=event_queue_size,
        slack_webhook_url=webhook_url,
        slack_channel=slack_section.get("channel") or None,
        log_level=log_level,
        log_format=log_format,
    )


class Settings:
    """애플리케이션 설정 (싱글턴 패턴)

    settings.yaml을 로드하고 관련 설정을 제공
    """

    _instance: "Settings | None" = None
    _config: LedgerConfig | None = None

    def __new__(cls, settings_path: Path | None = None) -> "Settings":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, settings_path: Path | None = None) -> None:
        if self._config is None:
            self._config = load_config(settings_path)

    @property
    def config(self) -> LedgerConfig:
        """로드된 원장 설정"""
        assert self._config is not None
        return self._config

    @property
    def db_path(self) -> Path:
        """원장 DB 경로"""
        return self.config.db_path

    @property
    def horizon_months(self) -> int:
        """Projection 생성 범위 (개월)"""
        return self.config.horizon_months

    @classmethod
    def reset(cls) -> None:
        """싱글턴 인스턴스 초기화 (테스트용)"""
        cls._instance = None
        cls._config = None


def get_settings(settings_path: Path | None = None) -> Settings:
    """Settings 인스턴스 반환

    Args:
        settings_path: settings.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Settings 싱글턴 인스턴스
    """
    return Settings(settings_path)
