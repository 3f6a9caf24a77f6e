"""Schema-declared record actions."""

from entityforge.actions.manager import ActionManager
from entityforge.actions.registry import (
    ActionContext,
    ActionHandler,
    ActionHandlerRegistry,
    action_handler,
)

__all__ = [
    "ActionContext",
    "ActionHandler",
    "ActionHandlerRegistry",
    "ActionManager",
    "action_handler",
]
