"""
Base wrapper entities.

A wrapper proxies exactly one engine object (``metadata_object``). It owns
behavior only; every value it exposes is read from and written to the engine
object. All settable properties go through _set_property(), the single
implementation of the change protocol:

    1. old == new                 -> no-op
    2. pre-change validators      -> APPLY / APPLY_WITHOUT_HISTORY / REJECT
    3. apply to the engine object -> if this raises, nothing is recorded or notified
    4. record PropertyChangedAction (unless APPLY_WITHOUT_HISTORY), then notify observers

Creation and deletion are recorded as ObjectAddedAction / ObjectRemovedAction,
so both are undoable like any property change.
"""
import logging
from typing import Any, Callable, ClassVar, Dict, List, Optional, TYPE_CHECKING

from tabularstate.changes import ChangeDecision, DeleteCheck, PropertyChange, PropertyChangedCallback
from tabularstate.errors import DuplicateNameError, Messages, PreconditionError
from tabularstate.undo_actions import ObjectRemovedAction, PropertyChangedAction

if TYPE_CHECKING:
    from tabularstate.collection import TabularObjectCollection
    from tabularstate.handler import TabularModelHandler
    from tabularstate.model import Model

logger = logging.getLogger(__name__)


class Properties:
    """Property names used by the change protocol and the presentation queries."""
    NAME = "name"
    DESCRIPTION = "description"
    ANNOTATIONS = "annotations"
    OBJECT_TYPE = "object_type"
    EXPRESSION = "expression"
    QUERY = "query"
    DATA_SOURCE = "data_source"
    SOURCE_TYPE = "source_type"
    MODE = "mode"
    DATA_VIEW = "data_view"
    REFRESHED_TIME = "refreshed_time"
    CUBE_NAME = "cube_name"
    CONNECTION_STRING = "connection_string"
    PROVIDER = "provider"
    PROTOCOL = "protocol"
    PARTITIONS = "partitions"


class TabularObject:
    """Wrapper around one engine object.

    Construction does not register the wrapper; it joins the registry once it
    is linked into the model (see TabularNamedObject._register_tree).
    """

    type_name: ClassVar[str] = "Object"

    def __init__(self, handler: 'TabularModelHandler', metadata_object: Any):
        self.handler = handler
        self.metadata_object = metadata_object
        self._on_property_changed_callbacks: List[PropertyChangedCallback] = []

    @property
    def model(self) -> 'Model':
        return self.handler.model

    @property
    def object_type(self) -> str:
        return self.type_name

    def init(self) -> None:
        """Post-creation hook, run once after an explicitly created object joins its collection."""

    def on_property_changed(self, callback: PropertyChangedCallback) -> None:
        """Subscribe to committed changes of this object."""
        if callback not in self._on_property_changed_callbacks:
            self._on_property_changed_callbacks.append(callback)

    def off_property_changed(self, callback: PropertyChangedCallback) -> None:
        """Unsubscribe from committed changes of this object."""
        if callback in self._on_property_changed_callbacks:
            self._on_property_changed_callbacks.remove(callback)

    def is_browsable(self, property_name: str) -> bool:
        return property_name in (Properties.NAME, Properties.DESCRIPTION, Properties.OBJECT_TYPE, Properties.ANNOTATIONS)

    def is_editable(self, property_name: str) -> bool:
        return property_name in (Properties.NAME, Properties.DESCRIPTION, Properties.ANNOTATIONS)

    # ========== CHANGE PROTOCOL ==========

    def _set_property(self, property_name: str, old_value: Any, new_value: Any, apply: Callable[[], None]) -> bool:
        """Run the change protocol for one property.

        Args:
            property_name: Name recorded in history and passed to hooks.
            old_value: Current value, as returned by the property getter.
            new_value: Requested value.
            apply: Writes new_value into the engine object.

        Returns:
            True if the change was committed, False for a no-op or a veto.
        """
        if old_value == new_value:
            return False

        self.handler._ensure_not_validating()
        change = PropertyChange(self, property_name, old_value, new_value)
        decision = self._on_property_changing(change)
        if decision is ChangeDecision.REJECT:
            logger.debug(f"Change of {type(self).__name__}.{property_name} vetoed")
            return False

        apply()

        if decision is ChangeDecision.APPLY:
            self.handler.undo_manager.add(PropertyChangedAction(self, property_name, old_value, new_value))
        logger.debug(f"Changed {type(self).__name__}.{property_name}: {old_value!r} -> {new_value!r}")
        self._on_property_changed(change)
        return True

    def _on_property_changing(self, change: PropertyChange) -> ChangeDecision:
        return self.handler._evaluate_property_changing(change)

    def _on_property_changed(self, change: PropertyChange) -> None:
        for callback in self._on_property_changed_callbacks:
            try:
                callback(change)
            except Exception as e:
                logger.warning(f"Error in property_changed callback: {e}")
        self.handler._notify_property_changed(change)

    def _restore_property(self, property_name: str, value: Any) -> None:
        """Write a value from history. Called by undo/redo while the undo manager is replaying."""
        setattr(self, property_name, value)

    def _set_metadata_attribute(self, property_name: str, attribute: str, value: Any) -> bool:
        """Protocol write for a property stored as a plain attribute of the engine object."""
        return self._set_property(
            property_name,
            getattr(self.metadata_object, attribute),
            value,
            lambda: setattr(self.metadata_object, attribute, value),
        )


class TabularNamedObject(TabularObject):
    """Wrapper that lives in a named collection and can be renamed and deleted."""

    def __init__(self, handler: 'TabularModelHandler', metadata_object: Any):
        super().__init__(handler, metadata_object)
        self.parent_collection: Optional['TabularObjectCollection'] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"

    @property
    def name(self) -> str:
        return self.metadata_object.name

    @name.setter
    def name(self, value: str) -> None:
        if value == self.name:
            return
        self._validate_name(value)
        self._set_metadata_attribute(Properties.NAME, "name", value)

    def can_edit_name(self) -> bool:
        return True

    def _validate_name(self, value: str) -> None:
        if not value or not value.strip():
            raise DuplicateNameError(Messages.EMPTY_NAME)
        collection = self.parent_collection
        if collection is not None:
            existing = collection.find(value)
            if existing is not None and existing is not self:
                raise DuplicateNameError(
                    Messages.DUPLICATE_NAME.format(name=value, collection=collection.collection_name)
                )

    @property
    def description(self) -> str:
        return self.metadata_object.description

    @description.setter
    def description(self, value: str) -> None:
        self._set_metadata_attribute(Properties.DESCRIPTION, "description", value)

    # ========== ANNOTATIONS ==========

    @property
    def annotations(self) -> Dict[str, str]:
        """Copy of the annotations; assign a new dict (or use set_annotation) to change them."""
        return dict(self.metadata_object.annotations)

    @annotations.setter
    def annotations(self, value: Dict[str, str]) -> None:
        new_value = dict(value)

        def apply() -> None:
            self.metadata_object.annotations.clear()
            self.metadata_object.annotations.update(new_value)

        self._set_property(Properties.ANNOTATIONS, self.annotations, new_value, apply)

    def get_annotation(self, key: str) -> Optional[str]:
        return self.metadata_object.annotations.get(key)

    def set_annotation(self, key: str, value: str) -> None:
        self.annotations = {**self.metadata_object.annotations, key: value}

    def remove_annotation(self, key: str) -> None:
        if key in self.metadata_object.annotations:
            self.annotations = {k: v for k, v in self.metadata_object.annotations.items() if k != key}

    # ========== LIFECYCLE ==========

    @property
    def parent(self) -> Optional[TabularObject]:
        return self.parent_collection.parent if self.parent_collection is not None else None

    @property
    def is_removed(self) -> bool:
        return self.parent_collection is None

    def children(self) -> List['TabularNamedObject']:
        return []

    def check_delete(self) -> DeleteCheck:
        """Decide whether delete() may proceed, with a message when it may not."""
        if self.is_removed:
            return DeleteCheck(False, Messages.OBJECT_ALREADY_REMOVED.format(name=self.name))
        return DeleteCheck(True)

    def can_delete(self) -> bool:
        return bool(self.check_delete())

    def delete(self) -> None:
        """Remove this object (and its children) from the model.

        Raises:
            PreconditionError: check_delete() refused; nothing was changed.
        """
        check = self.check_delete()
        if not check:
            raise PreconditionError(check.message)
        self.handler._ensure_not_validating()

        collection = self.parent_collection
        index = self._detach_from_model()
        self.handler.undo_manager.add(ObjectRemovedAction(self, collection, index))
        logger.debug(f"Deleted {type(self).__name__} {self.name!r}")

    def _attach_to_model(self, collection: 'TabularObjectCollection', index: Optional[int] = None) -> int:
        index = collection._attach(self, index)
        self._register_tree()
        return index

    def _detach_from_model(self) -> int:
        index = self.parent_collection._detach(self)
        self._unregister_tree()
        return index

    def _register_tree(self) -> None:
        self.handler.registry.register(self.metadata_object, self)
        for child in self.children():
            child._register_tree()

    def _unregister_tree(self) -> None:
        for child in self.children():
            child._unregister_tree()
        self.handler.registry.unregister(self.metadata_object)
