"""
Reversible actions recorded in the undo log.

Each action knows how to undo and redo itself against the live wrapper graph.
Actions hold wrappers (and through them engine objects) by reference, so undo
restores the very same objects rather than look-alike copies.
"""

from dataclasses import dataclass
from typing import Any, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from tabularstate.collection import TabularObjectCollection
    from tabularstate.tabular_object import TabularNamedObject, TabularObject


class UndoAction:
    """Base class; subclasses provide ``label`` and implement undo() and redo()."""

    def undo(self) -> None:
        raise NotImplementedError

    def redo(self) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class PropertyChangedAction(UndoAction):
    target: 'TabularObject'
    property_name: str
    old_value: Any
    new_value: Any

    @property
    def label(self) -> str:
        return f"Change {self.property_name}"

    def undo(self) -> None:
        self.target._restore_property(self.property_name, self.old_value)

    def redo(self) -> None:
        self.target._restore_property(self.property_name, self.new_value)


@dataclass(frozen=True)
class ObjectAddedAction(UndoAction):
    obj: 'TabularNamedObject'
    collection: 'TabularObjectCollection'
    index: int

    @property
    def label(self) -> str:
        return f"Add {self.obj.type_name}"

    def undo(self) -> None:
        self.obj._detach_from_model()

    def redo(self) -> None:
        self.obj._attach_to_model(self.collection, self.index)


@dataclass(frozen=True)
class ObjectRemovedAction(UndoAction):
    obj: 'TabularNamedObject'
    collection: 'TabularObjectCollection'
    index: int

    @property
    def label(self) -> str:
        return f"Delete {self.obj.type_name}"

    def undo(self) -> None:
        self.obj._attach_to_model(self.collection, self.index)

    def redo(self) -> None:
        self.obj._detach_from_model()


@dataclass(frozen=True)
class BatchAction(UndoAction):
    """Several actions undone and redone as one step."""
    label: str
    actions: Tuple[UndoAction, ...]

    def undo(self) -> None:
        for action in reversed(self.actions):
            action.undo()

    def redo(self) -> None:
        for action in self.actions:
            action.redo()
