"""Authorization rules.

A rule is a built-in name ("everyone", "authenticated", "owner", "admin")
or a predicate taking a RuleContext and returning a bool (or an awaitable
bool). Operations without rules are allowed; otherwise every rule must
pass, in order, stopping at the first failure.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any

from apiforge.auth.types import User
from apiforge.entities.types import Entity, Operation, RuleDef, RuleFn

DEFAULT_OWNER_FIELD = "authorId"

BUILTIN_RULES = ("everyone", "authenticated", "owner", "admin")


@dataclass
class RuleContext:
    """State a rule is evaluated against."""

    user: User | None
    input: dict[str, Any] = field(default_factory=dict)
    resource: dict[str, Any] | None = None
    entity: str = ""
    operation: Operation | None = None


@dataclass
class RuleCheck:
    """Outcome of check_rules()."""

    allowed: bool
    error: str | None = None


def everyone(ctx: RuleContext) -> bool:
    """Anyone can access."""
    return True


def authenticated(ctx: RuleContext) -> bool:
    return ctx.user is not None


def admin(ctx: RuleContext) -> bool:
    return ctx.user is not None and ctx.user.role == "admin"


def owner(owner_field: str) -> RuleFn:
    """Must own the resource.

    Passes on create (no resource yet, ownership is about to be set).
    """

    def check(ctx: RuleContext) -> bool:
        if ctx.user is None:
            return False
        if ctx.resource is None:
            return True
        return ctx.resource.get(owner_field) == ctx.user.id

    return check


def owner_or_admin(owner_field: str) -> RuleFn:
    """Must own the resource or be an admin."""

    def check(ctx: RuleContext) -> bool:
        if ctx.user is None:
            return False
        if ctx.user.role == "admin":
            return True
        if ctx.resource is None:
            return True
        return ctx.resource.get(owner_field) == ctx.user.id

    return check


def resolve_rule(rule: RuleDef, owner_field: str) -> RuleFn:
    """Resolve a rule definition to a predicate.

    Raises:
        ValueError: For unknown built-in names
    """
    if callable(rule):
        return rule
    if rule == "everyone":
        return everyone
    if rule == "authenticated":
        return authenticated
    if rule == "admin":
        return admin
    if rule == "owner":
        return owner(owner_field)
    raise ValueError(f"Unknown rule: {rule!r}")


def _owner_field(entity: Entity) -> str:
    return entity.config.owner_field or DEFAULT_OWNER_FIELD


def get_rules_for_operation(entity: Entity, operation: Operation | str) -> list[RuleFn]:
    rules = entity.config.rules.get(Operation(operation).value) or []
    return [resolve_rule(rule, _owner_field(entity)) for rule in rules]


async def check_rules(
    entity: Entity,
    operation: Operation | str,
    user: User | None,
    input: dict[str, Any] | None = None,
    resource: dict[str, Any] | None = None,
) -> RuleCheck:
    """Check whether an operation is allowed.

    Failure messages: "Authentication required" when there is no user,
    "Permission denied" otherwise. A predicate that raises fails the check
    with its own message.
    """
    operation = Operation(operation)
    rules = entity.config.rules.get(operation.value)
    if not rules:
        return RuleCheck(allowed=True)

    ctx = RuleContext(
        user=user,
        input=input or {},
        resource=resource,
        entity=entity.name,
        operation=operation,
    )

    for rule_def in rules:
        try:
            rule = resolve_rule(rule_def, _owner_field(entity))
            result = rule(ctx)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            return RuleCheck(allowed=False, error=str(e) or "Permission denied")

        if not result:
            if user is None:
                return RuleCheck(allowed=False, error="Authentication required")
            return RuleCheck(allowed=False, error="Permission denied")

    return RuleCheck(allowed=True)
