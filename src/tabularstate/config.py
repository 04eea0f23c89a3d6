"""
Handler configuration.

Provides thread-local storage for the process default configuration plus a
contextvars-based override scope, so tests and embedding applications can
swap settings without passing them through every constructor.

Resolution order used by get_current_config():
    innermost config_context() scope → thread-local global → HandlerConfig()
An explicit config passed to TabularModelHandler wins over all of these.
"""

import contextvars
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerConfig:
    """Settings for one editing session.

    Attributes:
        max_undo_history: Number of undo steps kept; older steps are dropped.
        default_compatibility_level: Compatibility level of engine models
            created by a handler that was not given one.
        copy_suffix: Appended to the source name when cloning without a name.
        new_name_prefix: Prefix for generated names of new objects ("New Partition").
    """
    max_undo_history: int = 500
    default_compatibility_level: int = 1500
    copy_suffix: str = " copy"
    new_name_prefix: str = "New "


_global_config_context = threading.local()

_current_config: contextvars.ContextVar[Optional[HandlerConfig]] = contextvars.ContextVar(
    'tabularstate_current_config', default=None
)


def set_global_config(config: Optional[HandlerConfig]) -> None:
    """Set the thread-local default configuration (None clears it)."""
    _global_config_context.value = config


def get_global_config() -> Optional[HandlerConfig]:
    """Get the thread-local default configuration, or None if unset."""
    return getattr(_global_config_context, 'value', None)


def get_current_config() -> HandlerConfig:
    """Resolve the configuration in effect for the current context."""
    scoped = _current_config.get()
    if scoped is not None:
        return scoped
    global_config = get_global_config()
    if global_config is not None:
        return global_config
    return HandlerConfig()


@contextmanager
def config_context(config: HandlerConfig) -> Generator[HandlerConfig, None, None]:
    """Temporarily make ``config`` the current configuration.

    Usage:
        with config_context(HandlerConfig(max_undo_history=10)):
            handler = TabularModelHandler()
    """
    token = _current_config.set(config)
    logger.debug(f"Entered config context: {config}")
    try:
        yield config
    finally:
        _current_config.reset(token)
