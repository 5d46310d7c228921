"""
pytest 공통 fixture 정의

설정 파일 / 임시 디렉토리
"""

import tempfile
from pathlib import Path

import pytest

from core.config.loader import Settings


@pytest.fixture
def temp_dir() -> Path:
    """OS 독립적인 임시 디렉토리 생성"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def reset_settings():
    """테스트마다 Settings 싱글턴 초기화"""
    Settings.reset()
    yield
    Settings.reset()


@pytest.fixture
def temp_settings_file(temp_dir: Path) -> Path:
    """테스트용 settings.yaml 파일 생성"""
    settings_content = f"""# 테스트용 settings.yaml
database:
  path: {temp_dir / "ledger.db"}

ledger:
  horizon_months: 6

events:
  queue_size: 10
  slack:
    webhook_url: "https://hooks.slack.com/services/T000/B000/XXXX"
    channel: "#ledger"

logging:
  level: debug
"""
    settings_path = temp_dir / "settings.yaml"
    settings_path.write_text(settings_content, encoding="utf-8")
    return settings_path


@pytest.fixture
def temp_settings_file_minimal(temp_dir: Path) -> Path:
    """기본값만 사용하는 settings.yaml (DB 경로만 지정)"""
    settings_path = temp_dir / "settings_minimal.yaml"
    settings_path.write_text(
        f"database:\n  path: {temp_dir / 'minimal.db'}\n",
        encoding="utf-8",
    )
    return settings_path
