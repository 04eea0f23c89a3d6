"""
Value types of the property change protocol.

A pre-change validator receives a PropertyChange and answers with a
ChangeDecision instead of flipping out-parameters:

    APPLY                  commit and record an undo entry
    APPLY_WITHOUT_HISTORY  commit, but do not record history (derived updates)
    REJECT                 veto; nothing changes, nothing is recorded

Validators must be pure: they inspect the model and decide, they never mutate it.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, TYPE_CHECKING

if TYPE_CHECKING:
    from tabularstate.tabular_object import TabularObject


class ChangeDecision(Enum):
    APPLY = "apply"
    APPLY_WITHOUT_HISTORY = "apply_without_history"
    REJECT = "reject"

    @classmethod
    def combine(cls, decisions: Iterable['ChangeDecision']) -> 'ChangeDecision':
        """Strictest decision wins: REJECT > APPLY_WITHOUT_HISTORY > APPLY."""
        result = cls.APPLY
        for decision in decisions:
            if decision is cls.REJECT:
                return cls.REJECT
            if decision is cls.APPLY_WITHOUT_HISTORY:
                result = cls.APPLY_WITHOUT_HISTORY
        return result


@dataclass(frozen=True)
class PropertyChange:
    """A proposed (pre-change) or committed (post-change) property mutation."""
    target: 'TabularObject'
    property_name: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class DeleteCheck:
    """Outcome of a delete precondition check. Truthy when deletion is allowed."""
    allowed: bool
    message: str = ""

    def __bool__(self) -> bool:
        return self.allowed


PropertyChangingValidator = Callable[[PropertyChange], ChangeDecision]
PropertyChangedCallback = Callable[[PropertyChange], None]
