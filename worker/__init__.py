"""
Worker 모듈

일일 projection 동기화 작업 (`python -m worker`)
"""

from worker.sync import ProjectionSyncJob

__all__ = ["ProjectionSyncJob"]
