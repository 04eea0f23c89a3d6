"""
Ordered wrapper collections.

A TabularObjectCollection mirrors one list of the engine graph (a table's
partitions, a model's data sources, ...). The wrapper list and the engine list
are only ever changed together, through _attach() and _detach(), so their
order and membership never drift apart.
"""
import logging
from typing import Any, Callable, Generic, Iterator, List, Optional, TypeVar, Union, TYPE_CHECKING

from tabularstate.undo_actions import ObjectAddedAction

if TYPE_CHECKING:
    from tabularstate.handler import TabularModelHandler
    from tabularstate.tabular_object import TabularNamedObject, TabularObject

logger = logging.getLogger(__name__)

T = TypeVar('T', bound='TabularNamedObject')


class TabularObjectCollection(Generic[T]):
    """Ordered, name-addressable collection of wrappers owned by ``parent``."""

    def __init__(self, handler: 'TabularModelHandler', parent: 'TabularObject', engine_items: List[Any], collection_name: str):
        self.handler = handler
        self.parent = parent
        self.collection_name = collection_name
        self._engine_items = engine_items
        self._items: List[T] = []

    def _wrap_existing(self, factory: Callable[[Any], T]) -> None:
        """Wrap engine objects already present in the engine list (model load path, no init)."""
        for engine_item in self._engine_items:
            obj = factory(engine_item)
            obj.parent_collection = self
            self._items.append(obj)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, key: Union[int, str]) -> T:
        if isinstance(key, str):
            obj = self.find(key)
            if obj is None:
                raise KeyError(key)
            return obj
        return self._items[key]

    def __contains__(self, item: Union[str, T]) -> bool:
        if isinstance(item, str):
            return self.find(item) is not None
        return any(obj is item for obj in self._items)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.names!r}>"

    @property
    def names(self) -> List[str]:
        return [obj.name for obj in self._items]

    def find(self, name: str) -> Optional[T]:
        for obj in self._items:
            if obj.name == name:
                return obj
        return None

    def index(self, obj: T) -> int:
        for i, item in enumerate(self._items):
            if item is obj:
                return i
        raise ValueError(f"{obj!r} is not in {self.collection_name}")

    def get_new_name(self, prefix: str) -> str:
        """Return ``prefix`` if unused, else the first free "<prefix> N" (N = 1, 2, ...)."""
        prefix = prefix.strip()
        if prefix not in self:
            return prefix
        suffix = 1
        while f"{prefix} {suffix}" in self:
            suffix += 1
        return f"{prefix} {suffix}"

    def add(self, obj: T) -> None:
        """Append a newly created wrapper and record the addition in the undo log."""
        self.handler._ensure_not_validating()
        index = obj._attach_to_model(self)
        self.handler.undo_manager.add(ObjectAddedAction(obj, self, index))
        logger.debug(f"Added {type(obj).__name__} {obj.name!r} to {self.collection_name}")

    def _attach(self, obj: T, index: Optional[int] = None) -> int:
        if index is None or index > len(self._items):
            index = len(self._items)
        self._items.insert(index, obj)
        self._engine_items.insert(index, obj.metadata_object)
        obj.parent_collection = self
        return index

    def _detach(self, obj: T) -> int:
        index = self.index(obj)
        del self._items[index]
        engine_index = next(i for i, item in enumerate(self._engine_items) if item is obj.metadata_object)
        del self._engine_items[engine_index]
        obj.parent_collection = None
        return index
