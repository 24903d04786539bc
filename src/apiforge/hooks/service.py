"""Hook execution service.

Runs one lifecycle point across every plugin's hook table, strictly in
plugin registration order, stopping as soon as a hook stops the context.
"""

import inspect
import logging
from collections.abc import Iterable

from apiforge.hooks.types import HookContext, Hooks

logger = logging.getLogger(__name__)


class HookService:
    """Orchestrates hook execution for entity lifecycle events.

    Hooks for the same point execute sequentially; each one sees the input,
    resource and filter mutations made by the ones before it.
    """

    def __init__(self, tables: Iterable[Hooks] = ()):
        self._tables: list[Hooks] = list(tables)

    def add(self, hooks: Hooks) -> None:
        self._tables.append(hooks)

    def __len__(self) -> int:
        return len(self._tables)

    async def run(self, hook_point: str, context: HookContext) -> None:
        """Execute every hook registered for a lifecycle point.

        Args:
            hook_point: One of HOOK_POINTS (e.g. "before_create")
            context: The per-request hook context

        Raises:
            Whatever a hook raises; the pipeline normalizes it.
        """
        for table in self._tables:
            if context.stopped:
                break
            hook_fn = table.get(hook_point)
            if hook_fn is None:
                continue
            result = hook_fn(context)
            if inspect.isawaitable(result):
                await result

    async def run_error(self, error: BaseException, context: HookContext) -> None:
        """Notify every on_error hook. Failures here are logged, never raised."""
        for table in self._tables:
            if table.on_error is None:
                continue
            try:
                result = table.on_error(error, context)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("on_error hook failed for entity '%s'", context.entity)
