"""
TabularModelHandler: one editing session over an engine model.

The handler owns everything that is per-session rather than per-object:
    - the WrapperRegistry (engine object -> wrapper)
    - the UndoManager and its transaction brackets
    - the governance collaborator consulted before creating objects
    - session-wide pre-change validators and post-change observers
    - the Model wrapper, built by wrapping the existing engine graph

Wrapping an existing engine graph uses direct construction only: no init(),
no default sources, no history.
"""
import logging
from typing import List, Optional

from tabularstate.changes import (
    ChangeDecision,
    PropertyChange,
    PropertyChangedCallback,
    PropertyChangingValidator,
)
from tabularstate.config import HandlerConfig, get_current_config
from tabularstate.engine import EngineModel
from tabularstate.errors import OperationNotPermittedError, ReentrantChangeError
from tabularstate.governance import AllowAllGovernance, Governance
from tabularstate.model import Model
from tabularstate.registry import WrapperRegistry
from tabularstate.undo import UndoManager, UndoTransaction

logger = logging.getLogger(__name__)


class TabularModelHandler:
    """Editing session: registry, undo log, governance and the wrapped Model."""

    def __init__(
        self,
        database: Optional[EngineModel] = None,
        config: Optional[HandlerConfig] = None,
        governance: Optional[Governance] = None,
    ):
        """
        Args:
            database: Engine model to wrap. A new empty one is created if omitted.
            config: Session settings; defaults to get_current_config().
            governance: Creation policy; defaults to allowing everything.
        """
        self.config = config if config is not None else get_current_config()
        if database is None:
            database = EngineModel(compatibility_level=self.config.default_compatibility_level)
        self.database = database
        self.governance: Governance = governance if governance is not None else AllowAllGovernance()
        self.registry = WrapperRegistry()
        self.undo_manager = UndoManager(max_history=self.config.max_undo_history)

        self._property_changing_validators: List[PropertyChangingValidator] = []
        self._property_changed_callbacks: List[PropertyChangedCallback] = []
        self._validating = False

        self.model = Model(self, database)
        self.model._register_tree()
        logger.debug(
            f"Opened session over model {database.name!r}: "
            f"{len(self.model.tables)} table(s), {len(self.model.data_sources)} data source(s)"
        )

    @property
    def compatibility_level(self) -> int:
        return self.database.compatibility_level

    # ========== TRANSACTIONS ==========

    def begin_update(self, label: str) -> UndoTransaction:
        """Open a transaction; everything until the matching end_update() is one undo step.

        The returned transaction is also a context manager that commits on
        normal exit and rolls back on exception:

            with handler.begin_update("Clone Partition"):
                ...
        """
        return self.undo_manager.begin_transaction(label)

    def end_update(self, rollback: bool = False) -> None:
        """Close the innermost transaction opened by begin_update()."""
        self.undo_manager.end_transaction(rollback=rollback)

    def undo(self) -> bool:
        return self.undo_manager.undo()

    def redo(self) -> bool:
        return self.undo_manager.redo()

    @property
    def can_undo(self) -> bool:
        return self.undo_manager.can_undo

    @property
    def can_redo(self) -> bool:
        return self.undo_manager.can_redo

    # ========== GOVERNANCE ==========

    def check_create(self, kind: type) -> None:
        """Raise OperationNotPermittedError if governance refuses creating ``kind``."""
        if not self.governance.allow_create(kind):
            raise OperationNotPermittedError(kind)

    # ========== HOOKS ==========

    def add_property_changing_validator(self, validator: PropertyChangingValidator) -> None:
        """Register a pre-change validator. Validators must not mutate the model."""
        if validator not in self._property_changing_validators:
            self._property_changing_validators.append(validator)

    def remove_property_changing_validator(self, validator: PropertyChangingValidator) -> None:
        if validator in self._property_changing_validators:
            self._property_changing_validators.remove(validator)

    def add_property_changed_callback(self, callback: PropertyChangedCallback) -> None:
        """Register an observer notified after every committed change."""
        if callback not in self._property_changed_callbacks:
            self._property_changed_callbacks.append(callback)

    def remove_property_changed_callback(self, callback: PropertyChangedCallback) -> None:
        if callback in self._property_changed_callbacks:
            self._property_changed_callbacks.remove(callback)

    def _ensure_not_validating(self) -> None:
        if self._validating:
            raise ReentrantChangeError("Pre-change validators must not modify the model")

    def _evaluate_property_changing(self, change: PropertyChange) -> ChangeDecision:
        """Ask every validator about ``change``; the strictest answer wins.

        History replay skips validation: what was committed once is always replayable.
        """
        if self.undo_manager.is_replaying:
            return ChangeDecision.APPLY_WITHOUT_HISTORY

        self._validating = True
        try:
            decisions = [validator(change) for validator in list(self._property_changing_validators)]
        finally:
            self._validating = False
        return ChangeDecision.combine(decisions)

    def _notify_property_changed(self, change: PropertyChange) -> None:
        for callback in list(self._property_changed_callbacks):
            try:
                callback(change)
            except Exception as e:
                logger.warning(f"Error in property_changed callback: {e}")
