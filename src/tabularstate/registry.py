"""
WrapperRegistry: identity map from engine objects to their wrappers.

Any code that needs "the wrapper for engine object X" looks it up here instead
of caching its own pointer. Entries are added when a wrapper is created or
restored and removed when it is deleted; nothing is garbage-collected
implicitly.

The registry is an explicit object owned by a TabularModelHandler and handed
to every wrapper through it, so separate sessions (and tests) never share
state.

Thread safety: Not thread-safe (single editing actor).
"""
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from tabularstate.tabular_object import TabularObject

logger = logging.getLogger(__name__)

RegistryCallback = Callable[[Any, 'TabularObject'], None]


class WrapperRegistry:
    """Bidirectional map engine object ↔ wrapper, keyed by engine object identity."""

    def __init__(self):
        # id(engine_object) -> (engine_object, wrapper); the engine object is held
        # so its id cannot be recycled while the entry is alive.
        self._wrappers: Dict[int, Tuple[Any, 'TabularObject']] = {}
        # id(wrapper) -> engine_object
        self._engine_objects: Dict[int, Any] = {}

        self._on_register_callbacks: List[RegistryCallback] = []
        self._on_unregister_callbacks: List[RegistryCallback] = []

    def add_register_callback(self, callback: RegistryCallback) -> None:
        """Subscribe to registration events."""
        if callback not in self._on_register_callbacks:
            self._on_register_callbacks.append(callback)

    def remove_register_callback(self, callback: RegistryCallback) -> None:
        """Unsubscribe from registration events."""
        if callback in self._on_register_callbacks:
            self._on_register_callbacks.remove(callback)

    def add_unregister_callback(self, callback: RegistryCallback) -> None:
        """Subscribe to unregistration events."""
        if callback not in self._on_unregister_callbacks:
            self._on_unregister_callbacks.append(callback)

    def remove_unregister_callback(self, callback: RegistryCallback) -> None:
        """Unsubscribe from unregistration events."""
        if callback in self._on_unregister_callbacks:
            self._on_unregister_callbacks.remove(callback)

    def _fire(self, callbacks: List[RegistryCallback], engine_object: Any, wrapper: 'TabularObject', event: str) -> None:
        for callback in callbacks:
            try:
                callback(engine_object, wrapper)
            except Exception as e:
                logger.warning(f"Error in {event} callback: {e}")

    def register(self, engine_object: Any, wrapper: 'TabularObject') -> None:
        """Register ``wrapper`` as the owner of ``engine_object``.

        Re-registering the same pair is a no-op. Registering a different wrapper
        for an engine object that already has one replaces the old entry, and
        a wrapper moving to a new engine object drops its previous entry, so
        the map stays one-to-one.
        """
        key = id(engine_object)
        existing = self._wrappers.get(key)
        if existing is not None:
            if existing[1] is wrapper:
                return
            logger.warning(f"Overwriting existing wrapper for engine object: {engine_object!r}")
            self._engine_objects.pop(id(existing[1]), None)

        previous_engine_object = self._engine_objects.get(id(wrapper))
        if previous_engine_object is not None and previous_engine_object is not engine_object:
            self._wrappers.pop(id(previous_engine_object), None)

        self._wrappers[key] = (engine_object, wrapper)
        self._engine_objects[id(wrapper)] = engine_object
        logger.debug(f"Registered wrapper: type={type(wrapper).__name__}, engine={type(engine_object).__name__}")

        self._fire(self._on_register_callbacks, engine_object, wrapper, "register")

    def unregister(self, engine_object: Any) -> Optional['TabularObject']:
        """Remove the entry for ``engine_object``.

        Returns:
            The wrapper that was registered, or None if there was none.
        """
        entry = self._wrappers.pop(id(engine_object), None)
        if entry is None:
            return None
        wrapper = entry[1]
        self._engine_objects.pop(id(wrapper), None)
        logger.debug(f"Unregistered wrapper: type={type(wrapper).__name__}")

        self._fire(self._on_unregister_callbacks, engine_object, wrapper, "unregister")
        return wrapper

    def resolve(self, engine_object: Any) -> Optional['TabularObject']:
        """Get the wrapper for ``engine_object``, or None if not registered."""
        if engine_object is None:
            return None
        entry = self._wrappers.get(id(engine_object))
        return entry[1] if entry is not None else None

    def engine_object_of(self, wrapper: 'TabularObject') -> Optional[Any]:
        """Get the engine object a wrapper is registered for, or None."""
        return self._engine_objects.get(id(wrapper))

    def clear(self) -> None:
        """Drop every entry without firing callbacks. For testing only."""
        self._wrappers.clear()
        self._engine_objects.clear()
        logger.debug("Cleared wrapper registry")

    def __contains__(self, engine_object: Any) -> bool:
        return id(engine_object) in self._wrappers

    def __len__(self) -> int:
        return len(self._wrappers)

    def __iter__(self) -> Iterator['TabularObject']:
        return iter([wrapper for _, wrapper in self._wrappers.values()])
