"""Hook system types.

Defines the data structures for entity lifecycle hooks:
- HookContext: per-request mutable state handed to every hook
- Hooks: the table of callbacks a plugin contributes
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, Union

from apiforge.auth.types import User
from apiforge.entities.types import Operation

if TYPE_CHECKING:
    from apiforge.persistence.driver import Driver


HOOK_POINTS = (
    "before_create",
    "after_create",
    "before_update",
    "after_update",
    "before_delete",
    "after_delete",
    "before_read",
    "before_list",
)


@dataclass
class HookContext:
    """Runtime context passed to every hook function.

    One context exists per request; hooks from different plugins share it
    and see each other's mutations in registration order.

    Attributes:
        entity: Name of the entity being operated on
        operation: The current operation
        user: The authenticated caller, if any
        input: Data that will be written (create/update)
        resource: The current resource (fetched, created or hook-supplied)
        driver: The instance's persistence driver
        filters: Extra `where` conditions added by hooks (read/list)
    """

    entity: str
    operation: Operation
    user: User | None = None
    input: dict[str, Any] = field(default_factory=dict)
    resource: dict[str, Any] | None = None
    driver: Driver | None = None
    filters: dict[str, Any] = field(default_factory=dict)
    stopped: bool = False

    def stop(self) -> None:
        """Short-circuit the operation; the pipeline answers with `resource`."""
        self.stopped = True

    def set_input(self, data: dict[str, Any]) -> None:
        self.input = {**self.input, **data}

    def set_resource(self, data: dict[str, Any]) -> None:
        self.resource = {**(self.resource or {}), **data}

    def add_filter(self, where: dict[str, Any]) -> None:
        self.filters = {**self.filters, **where}


HookFn = Callable[[HookContext], Union[None, Awaitable[None]]]
ErrorHookFn = Callable[[BaseException, HookContext], Union[None, Awaitable[None]]]


@dataclass
class Hooks:
    """Entity lifecycle callbacks contributed by a plugin.

    Every callback may be sync or async.
    """

    before_create: HookFn | None = None
    after_create: HookFn | None = None
    before_update: HookFn | None = None
    after_update: HookFn | None = None
    before_delete: HookFn | None = None
    after_delete: HookFn | None = None
    before_read: HookFn | None = None
    before_list: HookFn | None = None
    on_error: ErrorHookFn | None = None

    @classmethod
    def from_value(cls, value: Hooks | dict[str, Any] | None) -> Hooks:
        """Accept a Hooks instance, a mapping of hook names, or None."""
        if value is None:
            return cls()
        if isinstance(value, Hooks):
            return value
        known = {f.name for f in fields(cls)}
        unknown = set(value) - known
        if unknown:
            raise ValueError(f"Unknown hook names: {', '.join(sorted(unknown))}")
        return cls(**value)

    def get(self, hook_point: str) -> HookFn | None:
        if hook_point not in HOOK_POINTS:
            raise ValueError(f"Unknown hook point: {hook_point!r}")
        return getattr(self, hook_point)
