"""Overlay API routers: tokens, tasks, events and overlay state"""

from . import events_router, state_router, task_router, token_router

__all__ = [
    "events_router",
    "state_router",
    "task_router",
    "token_router",
]
