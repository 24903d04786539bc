"""Tests for authorization rules and bearer-token user extraction."""

import time

import jwt
import pytest

from apiforge.auth import (
    User,
    bearer_user_extractor,
    check_rules,
    decode_user_token,
    encode_user_token,
    get_rules_for_operation,
    owner_or_admin,
    resolve_rule,
)
from apiforge.auth.rules import RuleContext
from apiforge.entities import belongs_to, entity, string

SECRET = "test-secret"

ALICE = User(id="alice")
BOB = User(id="bob")
ADMIN = User(id="root", role="admin")


@pytest.fixture
def post():
    user = entity("user", {"name": string})
    return entity("post", {"title": string, "author": belongs_to(user)}).owned_by("author").build()


def _with_rules(**rules):
    return entity("note", {"body": string}).rules(**rules).build()


# =============================================================================
# check_rules
# =============================================================================


class TestCheckRules:
    @pytest.mark.asyncio
    async def test_no_rules_allows(self):
        result = await check_rules(_with_rules(), "create", None)
        assert result.allowed is True
        assert result.error is None

    @pytest.mark.asyncio
    async def test_authenticated_without_user(self):
        result = await check_rules(_with_rules(create=["authenticated"]), "create", None)
        assert result.allowed is False
        assert result.error == "Authentication required"

    @pytest.mark.asyncio
    async def test_admin_with_plain_user(self):
        result = await check_rules(_with_rules(delete=["admin"]), "delete", ALICE)
        assert result.allowed is False
        assert result.error == "Permission denied"

    @pytest.mark.asyncio
    async def test_admin_passes(self):
        assert (await check_rules(_with_rules(delete=["admin"]), "delete", ADMIN)).allowed

    @pytest.mark.asyncio
    async def test_owner_rule(self, post):
        resource = {"id": "p1", "authorId": "alice"}
        assert (await check_rules(post, "update", ALICE, resource=resource)).allowed
        denied = await check_rules(post, "update", BOB, resource=resource)
        assert denied.allowed is False
        assert denied.error == "Permission denied"

    @pytest.mark.asyncio
    async def test_owner_passes_without_resource(self, post):
        assert (await check_rules(post, "delete", ALICE)).allowed

    @pytest.mark.asyncio
    async def test_everyone_on_read(self, post):
        assert (await check_rules(post, "read", None)).allowed

    @pytest.mark.asyncio
    async def test_all_rules_must_pass(self):
        note = _with_rules(update=["authenticated", "admin"])
        assert not (await check_rules(note, "update", ALICE)).allowed
        assert (await check_rules(note, "update", ADMIN)).allowed

    @pytest.mark.asyncio
    async def test_custom_predicates(self):
        calls = []

        def sync_rule(ctx):
            calls.append(ctx.input)
            return ctx.input.get("ok") is True

        async def async_rule(ctx):
            return ctx.user is not None and ctx.user.id == "alice"

        note = _with_rules(create=[sync_rule, async_rule])
        assert (await check_rules(note, "create", ALICE, input={"ok": True})).allowed
        assert not (await check_rules(note, "create", BOB, input={"ok": True})).allowed
        assert calls == [{"ok": True}, {"ok": True}]

    @pytest.mark.asyncio
    async def test_raising_predicate_fails_with_its_message(self):
        def broken(ctx):
            raise RuntimeError("quota exceeded")

        result = await check_rules(_with_rules(create=[broken]), "create", ALICE)
        assert result.allowed is False
        assert result.error == "quota exceeded"

    @pytest.mark.asyncio
    async def test_unknown_rule_name_fails_closed(self):
        result = await check_rules(_with_rules(read=["moderator"]), "read", ADMIN)
        assert result.allowed is False
        assert result.error == "Unknown rule: 'moderator'"


class TestResolveRule:
    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown rule"):
            resolve_rule("superuser", "authorId")

    def test_owner_uses_owner_field(self, post):
        [update] = get_rules_for_operation(post, "update")
        ctx = RuleContext(user=ALICE, resource={"authorId": "alice"})
        assert update(ctx) is True

    def test_owner_or_admin(self):
        rule = owner_or_admin("ownerId")
        assert rule(RuleContext(user=ADMIN, resource={"ownerId": "x"})) is True
        assert rule(RuleContext(user=BOB, resource={"ownerId": "x"})) is False
        assert rule(RuleContext(user=None)) is False


# =============================================================================
# Bearer tokens
# =============================================================================


class TestBearerTokens:
    def test_round_trip_claims(self):
        token = encode_user_token(User(id="u1", email="u1@x.io", role="admin"), SECRET)
        user = decode_user_token(token, SECRET)
        assert user.id == "u1"
        assert user.email == "u1@x.io"
        assert user.role == "admin"
        assert "exp" in user.attributes

    def test_wrong_secret(self):
        token = encode_user_token(ALICE, SECRET)
        assert decode_user_token(token, "other") is None

    def test_expired(self):
        token = jwt.encode({"sub": "u1", "exp": int(time.time()) - 10}, SECRET, algorithm="HS256")
        assert decode_user_token(token, SECRET) is None

    def test_missing_subject(self):
        token = jwt.encode({"role": "admin"}, SECRET, algorithm="HS256")
        assert decode_user_token(token, SECRET) is None

    def test_extractor(self):
        extract = bearer_user_extractor(SECRET)
        token = encode_user_token(ALICE, SECRET)
        assert extract({"authorization": f"Bearer {token}"}).id == "alice"
        assert extract({"Authorization": f"Bearer {token}"}).id == "alice"
        assert extract({"authorization": f"Basic {token}"}) is None
        assert extract({}) is None
