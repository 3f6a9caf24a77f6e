"""Action handler registry.

Schema actions of type "handler" name a function registered here. Handlers
must be registered at application startup before a schema can reference
them.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class ActionContext:
    """Runtime state passed to an action handler.

    Attributes:
        entity_name: Entity the action runs on
        record: Current row values of the target record
        action: The schema's action definition
        principal: Caller the action runs on behalf of
        payload: Request body, if any
        services: The EntityEngine, for handlers that read or write other rows
    """

    entity_name: str
    record: dict[str, Any]
    action: Any
    principal: Any = None
    payload: dict[str, Any] | None = None
    services: Any = None


# Handler signature: (ActionContext) -> dict | None
ActionHandler = Callable[[ActionContext], dict[str, Any] | None]


class ActionHandlerRegistry:
    """Registry for custom action handlers.

    Example:
        @action_handler("reset_password")
        def reset_password(ctx: ActionContext) -> dict:
            ...
    """

    _handlers: dict[str, ActionHandler] = {}

    @classmethod
    def register(cls, name: str, handler: ActionHandler) -> None:
        """Register a handler by name. Re-registering a name is a no-op."""
        if name in cls._handlers:
            return
        cls._handlers[name] = handler

    @classmethod
    def get(cls, name: str) -> ActionHandler:
        """Get a registered handler.

        Raises:
            ValueError: If the handler is not registered
        """
        if name not in cls._handlers:
            raise ValueError(
                f"Action handler '{name}' is not registered. "
                "Handlers must be explicitly registered at application startup."
            )
        return cls._handlers[name]

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._handlers

    @classmethod
    def list_registered(cls) -> list[str]:
        return sorted(cls._handlers.keys())

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        cls._handlers.clear()


def action_handler(name: str) -> Callable[[ActionHandler], ActionHandler]:
    """Decorator to register an action handler."""

    def decorator(fn: ActionHandler) -> ActionHandler:
        ActionHandlerRegistry.register(name, fn)
        return fn

    return decorator
