"""
UndoManager: the undo log of one editing session.

Elementary mutations append UndoActions. A transaction (UndoTransaction,
returned by begin_transaction) groups every action recorded while it is open
into a single BatchAction, so a multi-step operation such as a clone or a bulk
conversion is one undo step.

Transactions nest: only the outermost one pushes a step onto the undo stack,
inner ones fold their actions into their parent. Leaving a transaction scope
with an exception rolls back exactly the actions recorded inside it.

While undo/redo replays actions, the manager is "replaying" and ignores any
action the replay would otherwise record.
"""
import logging
from contextlib import contextmanager
from typing import Callable, Generator, List, Optional

from tabularstate.errors import TransactionError
from tabularstate.undo_actions import BatchAction, UndoAction

logger = logging.getLogger(__name__)


class UndoTransaction:
    """A bracket of mutations that commits (or rolls back) as one unit.

    Use as a context manager:

        with manager.begin_transaction("Convert partitions"):
            ...  # commits on normal exit, rolls back on exception

    or close it explicitly with commit() / rollback().
    """

    def __init__(self, manager: 'UndoManager', label: str, parent: Optional['UndoTransaction']):
        self.manager = manager
        self.label = label
        self.parent = parent
        self.actions: List[UndoAction] = []
        self.closed = False

    def commit(self) -> None:
        self.manager._close(self, rollback=False)

    def rollback(self) -> None:
        self.manager._close(self, rollback=True)

    def __enter__(self) -> 'UndoTransaction':
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self.closed:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        return False


class UndoManager:
    """Undo/redo stacks with transaction grouping and bounded history."""

    def __init__(self, max_history: int = 500):
        self.max_history = max_history
        self._undo_stack: List[UndoAction] = []
        self._redo_stack: List[UndoAction] = []
        self._transactions: List[UndoTransaction] = []
        self._replaying = False

        # Fired whenever the undo or redo stack changes
        self._on_history_changed_callbacks: List[Callable[[], None]] = []

    def add_history_changed_callback(self, callback: Callable[[], None]) -> None:
        """Subscribe to history change events (step added, undone or redone)."""
        if callback not in self._on_history_changed_callbacks:
            self._on_history_changed_callbacks.append(callback)

    def remove_history_changed_callback(self, callback: Callable[[], None]) -> None:
        """Unsubscribe from history change events."""
        if callback in self._on_history_changed_callbacks:
            self._on_history_changed_callbacks.remove(callback)

    def _fire_history_changed_callbacks(self) -> None:
        for callback in self._on_history_changed_callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in history_changed callback: {e}")

    @property
    def is_replaying(self) -> bool:
        """True while undo(), redo() or a rollback is applying recorded actions."""
        return self._replaying

    @property
    def in_transaction(self) -> bool:
        return bool(self._transactions)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack) and not self._transactions

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack) and not self._transactions

    @property
    def history(self) -> List[str]:
        """Labels of undoable steps, oldest first."""
        return [action.label for action in self._undo_stack]

    @property
    def redo_history(self) -> List[str]:
        """Labels of redoable steps, next redo first."""
        return [action.label for action in reversed(self._redo_stack)]

    def add(self, action: UndoAction) -> None:
        """Record an action.

        Inside a transaction the action joins the innermost open transaction;
        otherwise it becomes its own undo step. Ignored while replaying.
        """
        if self._replaying:
            return
        if self._transactions:
            self._transactions[-1].actions.append(action)
            return
        self._push(action)

    def _push(self, action: UndoAction) -> None:
        self._undo_stack.append(action)
        self._redo_stack.clear()
        if len(self._undo_stack) > self.max_history:
            dropped = len(self._undo_stack) - self.max_history
            del self._undo_stack[:dropped]
            logger.debug(f"Dropped {dropped} oldest undo step(s)")
        logger.debug(f"Recorded undo step '{action.label}'")
        self._fire_history_changed_callbacks()

    def begin_transaction(self, label: str) -> UndoTransaction:
        parent = self._transactions[-1] if self._transactions else None
        transaction = UndoTransaction(self, label, parent)
        self._transactions.append(transaction)
        logger.debug(f"Begin transaction '{label}' (depth={len(self._transactions)})")
        return transaction

    def end_transaction(self, rollback: bool = False) -> None:
        """Close the innermost open transaction."""
        if not self._transactions:
            raise TransactionError("end_transaction() called without an open transaction")
        self._close(self._transactions[-1], rollback=rollback)

    def _close(self, transaction: UndoTransaction, rollback: bool) -> None:
        if transaction.closed:
            raise TransactionError(f"Transaction '{transaction.label}' is already closed")
        if not self._transactions or self._transactions[-1] is not transaction:
            raise TransactionError(f"Transaction '{transaction.label}' is not the innermost open transaction")

        self._transactions.pop()
        transaction.closed = True

        if rollback:
            with self._replay():
                for action in reversed(transaction.actions):
                    action.undo()
            logger.debug(f"Rolled back transaction '{transaction.label}' ({len(transaction.actions)} action(s))")
            return

        if transaction.parent is not None:
            transaction.parent.actions.extend(transaction.actions)
        elif transaction.actions:
            self._push(BatchAction(label=transaction.label, actions=tuple(transaction.actions)))
        logger.debug(f"Committed transaction '{transaction.label}' ({len(transaction.actions)} action(s))")

    @contextmanager
    def _replay(self) -> Generator[None, None, None]:
        self._replaying = True
        try:
            yield
        finally:
            self._replaying = False

    def undo(self) -> bool:
        """Undo the most recent step.

        Returns:
            True if a step was undone, False if there was nothing to undo.
        """
        if self._transactions:
            raise TransactionError("Cannot undo while a transaction is open")
        if not self._undo_stack:
            return False
        action = self._undo_stack.pop()
        with self._replay():
            action.undo()
        self._redo_stack.append(action)
        logger.debug(f"Undid '{action.label}'")
        self._fire_history_changed_callbacks()
        return True

    def redo(self) -> bool:
        """Redo the most recently undone step.

        Returns:
            True if a step was redone, False if there was nothing to redo.
        """
        if self._transactions:
            raise TransactionError("Cannot redo while a transaction is open")
        if not self._redo_stack:
            return False
        action = self._redo_stack.pop()
        with self._replay():
            action.redo()
        self._undo_stack.append(action)
        logger.debug(f"Redid '{action.label}'")
        self._fire_history_changed_callbacks()
        return True

    def clear(self) -> None:
        """Forget all history. Open transactions are discarded without rollback."""
        self._undo_stack.clear()
        self._redo_stack.clear()
        self._transactions.clear()
        self._fire_history_changed_callbacks()
