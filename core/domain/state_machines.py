"""
State Machines

CC(신용카드) 항목의 생명주기 상태 전이 관리.

상태는 Enum 멤버로 보관하고, 허용 전이는 클래스 단위 테이블로 선언.
"""

import logging
from enum import Enum
from typing import ClassVar, Generic, Mapping, TypeVar

from core.domain.errors import CCStateTransitionError
from core.types import CCState

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Enum)


class StateMachineError(Exception):
    """상태 전이 오류"""
    pass


class StateMachine(Generic[S]):
    """Enum 상태 머신 기본 클래스

    하위 클래스는 state_type과 TRANSITIONS만 선언.
    문자열 상태도 state_type으로 변환해서 받음.

    Args:
        initial_state: 초기 상태
    """

    state_type: ClassVar[type[Enum]]
    TRANSITIONS: ClassVar[Mapping[Enum, frozenset]] = {}
    error_class: ClassVar[type[Exception]] = StateMachineError

    def __init__(self, initial_state: S | str):
        self._state: S = self._coerce(initial_state)
        self._history: list[tuple[S, S]] = []

    def _coerce(self, value: S | str) -> S:
        return self.state_type(value)  # type: ignore[return-value]

    @property
    def state(self) -> S:
        return self._state

    @property
    def history(self) -> list[tuple[S, S]]:
        """전이 이력 [(from, to), ...]"""
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        """더 이상 전이할 수 없는 상태인지"""
        return not self.TRANSITIONS.get(self._state)

    def can_transition(self, to_state: S | str) -> bool:
        return self._coerce(to_state) in self.TRANSITIONS.get(self._state, frozenset())

    def transition(self, to_state: S | str) -> S:
        """상태 전이

        Raises:
            error_class: 허용되지 않은 전이 (상태는 그대로 유지)
        """
        target = self._coerce(to_state)
        if not self.can_transition(target):
            logger.debug(
                f"{type(self).__name__} 전이 거부: {self._state.value} → {target.value}"
            )
            raise self.error_class(
                f"{self._state.value} → {target.value} transition not allowed"
            )

        self._history.append((self._state, target))
        self._state = target
        return target


class CCStateMachine(StateMachine[CCState]):
    """CC 생명주기 상태 머신

    전이 규칙:
    - PENDING → BILLED: 명세서에 청구됨
    - BILLED → PENDING: 청구 취소 (사용자 실수 되돌리기)
    - BILLED → SETTLED: 정산 완료
    - SETTLED: 종료 상태
    """

    state_type = CCState
    error_class = CCStateTransitionError
    TRANSITIONS = {
        CCState.PENDING: frozenset({CCState.BILLED}),
        CCState.BILLED: frozenset({CCState.PENDING, CCState.SETTLED}),
        CCState.SETTLED: frozenset(),
    }

    def __init__(self, initial_state: CCState | str = CCState.PENDING):
        super().__init__(initial_state)

    @property
    def cc_state(self) -> CCState:
        return self._state
