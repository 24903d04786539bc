"""Entity lifecycle hook system.

Plugins contribute a Hooks table; the pipeline runs each lifecycle point
across all tables in plugin order:
- before_create / after_create
- before_update / after_update
- before_delete / after_delete
- before_read, before_list
- on_error

Usage:
    def stamp(ctx: HookContext) -> None:
        ctx.set_input({"slug": ctx.input["title"].lower()})

    Hooks(before_create=stamp)
"""

from apiforge.hooks.service import HookService
from apiforge.hooks.types import HOOK_POINTS, ErrorHookFn, HookContext, HookFn, Hooks

__all__ = [
    "ErrorHookFn",
    "HOOK_POINTS",
    "HookContext",
    "HookFn",
    "HookService",
    "Hooks",
]
