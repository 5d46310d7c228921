"""
로깅 설정

Worker/스크립트 공통 로깅 초기화.
서비스 코드는 `logger.info(msg, extra={...})`로 workspace/template/loan 등
식별자를 남기고, 포매터가 이를 로그 줄 끝(text) 또는 필드(json)로 출력.

사용법:
    from core.logging import setup_logging
    setup_logging("worker", file_format="json")
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

from core.constants import Paths

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_BACKUP_COUNT = 7

VALID_LOG_FORMATS = ("text", "json")

# DEBUG 로그가 과도한 외부 라이브러리
NOISY_LOGGERS = [
    "aiosqlite",
    "httpcore",
    "httpx",
    "asyncio",
]

# LogRecord 기본 속성 (extra로 넘어온 필드 구분용)
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """extra로 전달된 컨텍스트 필드만 추출"""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class ContextFormatter(logging.Formatter):
    """텍스트 포매터 (extra 필드를 `key=value`로 덧붙임)"""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{line} | {pairs}"


class JsonFormatter(logging.Formatter):
    """JSON 한 줄 포매터 (로그 수집기용)"""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(record_context(record))
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, ensure_ascii=False, default=str)


def build_formatter(file_format: str) -> logging.Formatter:
    if file_format == "json":
        return JsonFormatter()
    if file_format == "text":
        return ContextFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    raise ValueError(f"unknown log format: {file_format!r}")


def get_log_dir(process_name: str, base_dir: Path | None = None) -> Path:
    """프로세스별 로그 디렉토리

    base_dir 지정 시 `base_dir/process_name`, 아니면 worker 전용 또는 공용 디렉토리.
    """
    if base_dir is not None:
        return base_dir / process_name
    if process_name == "worker":
        return Paths.WORKER_LOGS_DIR
    return Paths.LOGS_DIR


def setup_logging(
    process_name: str,
    console_level: int = logging.INFO,
    file_level: int = logging.INFO,
    file_format: str = "text",
    base_dir: Path | None = None,
) -> logging.Logger:
    """루트 로거 초기화

    콘솔(텍스트)과 일별 롤링 파일(text 또는 json) 핸들러를 설치.
    기존 루트 핸들러는 제거되므로 여러 번 호출해도 중복되지 않음.

    Args:
        process_name: 프로세스 이름 (로그 파일 이름으로 사용)
        console_level: 콘솔 로그 레벨
        file_level: 파일 로그 레벨
        file_format: 파일 로그 형식 ("text" | "json")
        base_dir: 로그 루트 디렉토리 (테스트용)

    Returns:
        루트 Logger
    """
    file_formatter = build_formatter(file_format)

    log_dir = get_log_dir(process_name, base_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{process_name}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ContextFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root_logger.addHandler(console_handler)

    file_handler = TimedRotatingFileHandler(
        filename=log_file,
        when="midnight",
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.suffix = "%Y-%m-%d"  # worker.log.2026-03-15
    file_handler.setLevel(file_level)
    file_handler.setFormatter(file_formatter)
    root_logger.addHandler(file_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.info(
        f"로깅 초기화 완료: {process_name}",
        extra={"log_file": str(log_file), "file_format": file_format},
    )
    return root_logger
