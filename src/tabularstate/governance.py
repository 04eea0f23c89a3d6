"""
Governance collaborators.

A governance policy decides which kinds of objects may be created in the
current model (for instance, a hosted service that only accepts M partitions).
The handler consults it before every create and clone.
"""
import logging
from typing import Iterable, Protocol, Set

logger = logging.getLogger(__name__)


class Governance(Protocol):
    def allow_create(self, kind: type) -> bool:
        ...


class AllowAllGovernance:
    """Default policy: everything may be created."""

    def allow_create(self, kind: type) -> bool:
        return True


class RestrictedGovernance:
    """Refuses creation of the listed kinds.

    Only exact types are refused; a subclass of a refused kind must be listed
    on its own.
    """

    def __init__(self, denied_kinds: Iterable[type] = ()):
        self.denied_kinds: Set[type] = set(denied_kinds)

    def deny(self, kind: type) -> None:
        self.denied_kinds.add(kind)

    def allow(self, kind: type) -> None:
        self.denied_kinds.discard(kind)

    def allow_create(self, kind: type) -> bool:
        allowed = kind not in self.denied_kinds
        if not allowed:
            logger.debug(f"Governance refused creation of {kind.__name__}")
        return allowed
