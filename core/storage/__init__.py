"""
스토리지 모듈

원장 항목, 반복 템플릿, 대출, Projection 제외 월, 조회용 엔티티 저장소 제공
"""

from core.storage.entry_store import EntryStore
from core.storage.exclusion_store import ExclusionStore
from core.storage.loan_store import LoanStore
from core.storage.lookup_store import LookupStore
from core.storage.template_store import TemplateStore

__all__ = [
    "EntryStore",
    "ExclusionStore",
    "LoanStore",
    "LookupStore",
    "TemplateStore",
]
