"""
core/config/loader.py 테스트

settings.yaml 로드, 검증, Settings 싱글턴 테스트
"""

import logging
from pathlib import Path

import pytest

from core.config.loader import (
    ConfigLoadError,
    LedgerConfig,
    Settings,
    get_settings,
    load_config,
)
from core.constants import PROJECT_ROOT, Defaults


class TestLedgerConfig:
    """LedgerConfig 데이터클래스 테스트"""

    def test_defaults(self, temp_dir: Path) -> None:
        config = LedgerConfig(db_path=temp_dir / "ledger.db")

        assert config.horizon_months == Defaults.HORIZON_MONTHS
        assert config.event_queue_size == Defaults.EVENT_QUEUE_SIZE
        assert config.slack_webhook_url is None
        assert config.log_level == "INFO"

    def test_immutable(self, temp_dir: Path) -> None:
        """불변 확인"""
        config = LedgerConfig(db_path=temp_dir / "ledger.db")

        with pytest.raises(AttributeError):
            config.horizon_months = 3  # type: ignore[misc]

    def test_log_level_value(self, temp_dir: Path) -> None:
        config = LedgerConfig(db_path=temp_dir / "ledger.db", log_level="DEBUG")
        assert config.log_level_value == logging.DEBUG


class TestLoadConfig:
    """load_config 테스트"""

    def test_load_full(self, temp_settings_file: Path, temp_dir: Path) -> None:
        """전체 설정 로드"""
        config = load_config(temp_settings_file)

        assert config.db_path == temp_dir / "ledger.db"
        assert config.horizon_months == 6
        assert config.event_queue_size == 10
        assert config.slack_webhook_url == "https://hooks.slack.com/services/T000/B000/XXXX"
        assert config.slack_channel == "#ledger"
        assert config.log_level == "DEBUG"

    def test_load_minimal(self, temp_settings_file_minimal: Path) -> None:
        """기본값 적용"""
        config = load_config(temp_settings_file_minimal)

        assert config.horizon_months == 12
        assert config.slack_webhook_url is None
        assert config.slack_channel is None

    def test_relative_db_path(self, temp_dir: Path) -> None:
        """상대 경로는 프로젝트 루트 기준"""
        path = temp_dir / "settings.yaml"
        path.write_text("database:\n  path: data/other.db\n", encoding="utf-8")

        assert load_config(path).db_path == PROJECT_ROOT / "data" / "other.db"

    def test_empty_webhook_disables_slack(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text('events:\n  slack:\n    webhook_url: ""\n', encoding="utf-8")

        assert load_config(path).slack_webhook_url is None

    def test_missing_file(self, temp_dir: Path) -> None:
        """파일 없음"""
        with pytest.raises(ConfigLoadError, match="찾을 수 없습니다"):
            load_config(temp_dir / "nonexistent.yaml")

    def test_empty_file(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("", encoding="utf-8")

        with pytest.raises(ConfigLoadError, match="비어 있습니다"):
            load_config(path)

    def test_invalid_yaml(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("ledger: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigLoadError, match="파싱 실패"):
            load_config(path)

    def test_top_level_not_mapping(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigLoadError):
            load_config(path)

    @pytest.mark.parametrize("value", ["0", "-1", "twelve", "true"])
    def test_invalid_horizon(self, temp_dir: Path, value: str) -> None:
        """horizon_months는 양의 정수"""
        path = temp_dir / "settings.yaml"
        path.write_text(f"ledger:\n  horizon_months: {value}\n", encoding="utf-8")

        with pytest.raises(ConfigLoadError, match="horizon_months"):
            load_config(path)

    def test_invalid_log_level(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("logging:\n  level: verbose\n", encoding="utf-8")

        with pytest.raises(ConfigLoadError, match="로그 레벨"):
            load_config(path)


class TestSettings:
    """Settings 싱글턴 테스트"""

    def test_singleton(self, temp_settings_file: Path) -> None:
        first = get_settings(temp_settings_file)
        second = get_settings()

        assert first is second
        assert second.horizon_months == 6

    def test_reset(self, temp_settings_file: Path, temp_settings_file_minimal: Path) -> None:
        """reset 후 다시 로드"""
        assert get_settings(temp_settings_file).horizon_months == 6

        Settings.reset()

        settings = get_settings(temp_settings_file_minimal)
        assert settings.horizon_months == 12
        assert settings.db_path.name == "minimal.db"

    def test_load_error_propagates(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigLoadError):
            get_settings(temp_dir / "missing.yaml")


class TestLogFormat:
    """파일 로그 형식 설정"""

    def test_default_text(self, temp_settings_file_minimal: Path) -> None:
        assert load_config(temp_settings_file_minimal).log_format == "text"

    def test_json(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("logging:\n  format: JSON\n", encoding="utf-8")

        assert load_config(path).log_format == "json"

    def test_invalid(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("logging:\n  format: xml\n", encoding="utf-8")

        with pytest.raises(ConfigLoadError, match="로그 형식"):
            load_config(path)
