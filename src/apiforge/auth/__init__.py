"""Authorization rules and user extraction."""

from apiforge.auth.bearer import bearer_user_extractor, decode_user_token, encode_user_token
from apiforge.auth.rules import (
    BUILTIN_RULES,
    RuleCheck,
    RuleContext,
    admin,
    authenticated,
    check_rules,
    everyone,
    get_rules_for_operation,
    owner,
    owner_or_admin,
    resolve_rule,
)
from apiforge.auth.types import User

__all__ = [
    "BUILTIN_RULES",
    "RuleCheck",
    "RuleContext",
    "User",
    "admin",
    "authenticated",
    "bearer_user_extractor",
    "check_rules",
    "decode_user_token",
    "encode_user_token",
    "everyone",
    "get_rules_for_operation",
    "owner",
    "owner_or_admin",
    "resolve_rule",
]
