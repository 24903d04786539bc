"""Automatic createdAt/updatedAt timestamps.

    api = ApiForge(entities=[...], plugins=[timestamps()])

Both fields are optional at the validation layer because the hooks fill
them in before the driver is called.
"""

from datetime import datetime, timezone

from apiforge.entities.types import FieldDef
from apiforge.hooks.types import HookContext, Hooks
from apiforge.plugins.legacy import Plugin

TIMESTAMP_FIELDS = {
    "createdAt": FieldDef(type="datetime", optional=True),
    "updatedAt": FieldDef(type="datetime", optional=True),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _stamp_create(ctx: HookContext) -> None:
    now = _now()
    if not ctx.input.get("createdAt"):
        ctx.set_input({"createdAt": now})
    if not ctx.input.get("updatedAt"):
        ctx.set_input({"updatedAt": now})


def _stamp_update(ctx: HookContext) -> None:
    ctx.set_input({"updatedAt": _now()})


def timestamps() -> Plugin:
    """Plugin adding createdAt/updatedAt to every entity."""
    return Plugin(
        name="timestamps",
        fields={"all": dict(TIMESTAMP_FIELDS)},
        hooks=Hooks(before_create=_stamp_create, before_update=_stamp_update),
    )
