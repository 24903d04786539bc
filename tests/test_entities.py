"""Tests for the field/entity model and builder DSL."""

import pytest

from apiforge.entities import (
    NO_DEFAULT,
    Entity,
    Operation,
    belongs_to,
    build_fields,
    capitalize,
    email,
    entity,
    has_many,
    has_one,
    int_,
    pluralize,
    resolve_entity,
    singularize,
    string,
    text,
)
from apiforge.entities.entity import OWNED_DEFAULT_RULES


# =============================================================================
# Field builders
# =============================================================================


class TestFieldBuilder:
    def test_base_definition(self):
        field = string.build()
        assert field.type == "string"
        assert field.optional is False
        assert field.unique is False
        assert field.default is NO_DEFAULT
        assert field.has_default is False

    def test_modifiers_return_new_builders(self):
        base = string
        optional = base.optional()
        assert optional is not base
        assert base.build().optional is False
        assert optional.build().optional is True

    def test_chained_modifiers(self):
        field = int_.min(0).max(10).default(5).unique().build()
        assert field.min == 0
        assert field.max == 10
        assert field.default == 5
        assert field.has_default is True
        assert field.unique is True

    def test_none_is_a_valid_default(self):
        assert text.default(None).build().has_default is True

    def test_email_builder(self):
        field = email.build()
        assert field.type == "string"
        assert field.is_email is True

    def test_unknown_type_rejected(self):
        from apiforge.entities.fields import FieldBuilder

        with pytest.raises(ValueError, match="Unknown field type"):
            FieldBuilder("money")

    def test_shared_base_specialized_independently(self):
        name = string.min(1)
        short = name.max(10).build()
        long = name.max(200).build()
        assert short.max == 10
        assert long.max == 200
        assert name.build().max is None


class TestRelationBuilder:
    def test_belongs_to_defaults(self):
        user = entity("user", {"name": string})
        field = belongs_to(user).build("author")
        assert field.relation.type == "belongsTo"
        assert field.relation.foreign_key == "authorId"
        assert field.relation.references == "id"
        assert field.optional is False
        assert field.relation.entity().name == "user"

    def test_has_many_is_optional(self):
        field = has_many(lambda: entity("post", {"title": string})).build("posts")
        assert field.optional is True
        assert field.is_collection is True

    def test_has_one_is_unique(self):
        field = has_one(lambda: entity("profile", {"bio": text})).build("profile")
        assert field.unique is True
        assert field.optional is True

    def test_custom_foreign_key_and_on_delete(self):
        user = entity("user", {"name": string})
        builder = belongs_to(user)
        custom = builder.foreign_key("writerId").on_delete("cascade")
        assert builder.build("owner").relation.foreign_key == "ownerId"
        field = custom.build("owner")
        assert field.relation.foreign_key == "writerId"
        assert field.relation.on_delete == "cascade"
        assert builder.build("owner").relation.on_delete is None

    def test_invalid_on_delete(self):
        with pytest.raises(ValueError, match="onDelete"):
            belongs_to(lambda: None).on_delete("explode")

    def test_lazy_target_allows_forward_references(self):
        post = entity("post", {"author": belongs_to(lambda: user)})
        user = entity("user", {"name": string})
        field = post.build().fields["author"]
        assert field.relation.entity().name == "user"

    def test_build_fields_rejects_non_builders(self):
        with pytest.raises(ValueError, match="not a field builder"):
            build_fields({"name": "string"})


# =============================================================================
# Entity builder
# =============================================================================


class TestEntityBuilder:
    def test_build_produces_entity(self):
        user = entity("user", {"email": string.unique(), "name": string}).build()
        assert isinstance(user, Entity)
        assert user.name == "user"
        assert list(user.fields) == ["email", "name"]
        assert user.config.timestamps is True

    @pytest.mark.parametrize("name", ["", "User", "1user", "user-name", "user_name"])
    def test_invalid_names(self, name):
        with pytest.raises(ValueError, match="Invalid entity name"):
            entity(name, {})

    def test_rules_by_keyword_and_mapping(self):
        built = (
            entity("post", {"title": string})
            .rules({Operation.CREATE: ["authenticated"]}, delete=["admin"])
            .build()
        )
        assert built.config.rules == {"create": ["authenticated"], "delete": ["admin"]}

    def test_owned_by_sets_owner_field_and_default_rules(self):
        user = entity("user", {"name": string})
        built = entity("post", {"author": belongs_to(user)}).owned_by("author").build()
        assert built.config.owner_field == "authorId"
        assert built.config.rules == OWNED_DEFAULT_RULES

    def test_explicit_rules_win_over_owned_defaults(self):
        user = entity("user", {"name": string})
        built = (
            entity("post", {"author": belongs_to(user)})
            .rules(update=["admin"])
            .owned_by("author")
            .build()
        )
        assert built.config.rules["update"] == ["admin"]
        assert built.config.rules["delete"] == ["owner"]

    def test_owned_by_requires_belongs_to(self):
        with pytest.raises(ValueError, match="not a relation"):
            entity("post", {"title": string}).owned_by("title")

    def test_no_timestamps(self):
        assert entity("tag", {"label": string}).no_timestamps().build().config.timestamps is False

    def test_built_entities_are_independent(self):
        builder = entity("post", {"title": string})
        first = builder.build()
        builder.rules(create=["admin"])
        second = builder.build()
        assert first.config.rules == {}
        assert second.config.rules == {"create": ["admin"]}

    def test_resolve_entity(self):
        builder = entity("user", {"name": string})
        built = builder.build()
        assert resolve_entity(built) is built
        assert resolve_entity(builder).name == "user"
        with pytest.raises(ValueError, match="undefined entity"):
            resolve_entity(None)

    def test_with_fields_copies(self):
        user = entity("user", {"name": string}).build()
        extended = user.with_fields({"age": int_.build()})
        assert "age" in extended.fields
        assert "age" not in user.fields


# =============================================================================
# Naming
# =============================================================================


class TestNaming:
    @pytest.mark.parametrize(
        "singular, plural",
        [
            ("post", "posts"),
            ("category", "categories"),
            ("day", "days"),
            ("box", "boxes"),
            ("bus", "buses"),
            ("match", "matches"),
            ("wish", "wishes"),
            ("quiz", "quizes"),
        ],
    )
    def test_pluralize(self, singular, plural):
        assert pluralize(singular) == plural

    @pytest.mark.parametrize(
        "plural, singular",
        [("posts", "post"), ("categories", "category"), ("boxes", "box"), ("wishes", "wish")],
    )
    def test_singularize(self, plural, singular):
        assert singularize(plural) == singular

    def test_capitalize(self):
        assert capitalize("post") == "Post"
        assert capitalize("") == ""
