"""
원장 코어 서비스

반복 템플릿 projection, 대출 스케줄, CC 생명주기, 정산.

사용 예시:
```python
from core.ledger import ProjectionGenerator, SettlementEngine
from core.storage import EntryStore, ExclusionStore, LookupStore

entries = EntryStore(db)
lookups = LookupStore(db)

generator = ProjectionGenerator(db, entries, ExclusionStore(db), lookups, publisher)
result = await generator.generate(template)

engine = SettlementEngine(db, entries, lookups, publisher)
settlement = await engine.settle(workspace_id, [11, 12], bank.id, card.id)
```
"""

from core.ledger.cc import CCLifecycleService
from core.ledger.exclusions import ExclusionTracker
from core.ledger.loan_calculator import (
    build_schedule,
    calculate_first_due_month,
    calculate_monthly_payment,
    round2,
)
from core.ledger.loans import LoanService
from core.ledger.projection import ProjectionGenerator, first_candidate_date
from core.ledger.settlement import SettlementEngine
from core.ledger.templates import RecurringTemplateService

__all__ = [
    # Services
    "CCLifecycleService",
    "ExclusionTracker",
    "LoanService",
    "ProjectionGenerator",
    "RecurringTemplateService",
    "SettlementEngine",
    # Pure functions
    "build_schedule",
    "calculate_first_due_month",
    "calculate_monthly_payment",
    "first_candidate_date",
    "round2",
]
