"""Tests for loading plugin extensions and schemas from YAML / dicts."""

import textwrap

import pytest

from apiforge.entities import NO_DEFAULT
from apiforge.errors import PluginError
from apiforge.plugins import (
    EntityRouteConfig,
    FieldReference,
    PluginExtension,
    extension_from_dict,
    load_extension,
    schema_from_dict,
)


def write_yaml(tmp_path, content, name="extension.yaml"):
    path = tmp_path / name
    path.write_text(textwrap.dedent(content))
    return path


# =============================================================================
# YAML extensions
# =============================================================================


class TestLoadExtension:
    def test_full_extension(self, tmp_path):
        path = write_yaml(
            tmp_path,
            """
            basePath: /identity
            entities:
              user:
                rename: member
                routePath: people
                fields:
                  name:
                    rename: fullName
                  avatar:
                    remove: true
                  email:
                    override:
                      unique: false
                addFields:
                  age:
                    type: int
            addEntities:
              device:
                fields:
                  label: {type: string, required: true}
            routes:
              /logout: disable
            entityRoutes:
              member:
                delete: disable
                update: {disable: true}
            """,
        )
        ext = load_extension(path)

        assert isinstance(ext, PluginExtension)
        assert ext.base_path == "/identity"
        user = ext.entities["user"]
        assert user.rename == "member"
        assert user.route_path == "people"
        assert user.fields["name"].rename == "fullName"
        assert user.fields["avatar"].remove is True
        assert user.fields["email"].override == {"unique": False}
        assert user.add_fields["age"].type == "int"
        assert ext.add_entities["device"].fields["label"].required is True
        assert ext.routes == {"/logout": "disable"}
        assert ext.entity_routes["member"].delete == "disable"
        assert ext.entity_routes["member"].update == EntityRouteConfig(disable=True)

    def test_snake_case_keys(self, tmp_path):
        path = write_yaml(
            tmp_path,
            """
            base_path: false
            entity_routes:
              user:
                list: disable
            """,
        )
        ext = load_extension(path)
        assert ext.base_path is False
        assert ext.entity_routes["user"].list == "disable"

    def test_empty_file(self, tmp_path):
        ext = load_extension(write_yaml(tmp_path, ""))
        assert ext == PluginExtension()

    def test_unknown_key(self, tmp_path):
        path = write_yaml(tmp_path, "entities: {}\nviews: []\n")
        with pytest.raises(PluginError, match="Invalid plugin extension"):
            load_extension(path)

    def test_yaml_syntax_error(self, tmp_path):
        path = write_yaml(tmp_path, "entities: [unclosed\n")
        with pytest.raises(PluginError, match="YAML parse error"):
            load_extension(path)

    def test_not_a_mapping(self, tmp_path):
        path = write_yaml(tmp_path, "- one\n- two\n")
        with pytest.raises(PluginError, match="must be a mapping"):
            load_extension(path)

    def test_bad_field_type(self):
        with pytest.raises(PluginError):
            extension_from_dict({"addEntities": {"x": {"fields": {"a": {"type": "money"}}}}})

    def test_override_references_converted(self):
        ext = extension_from_dict(
            {
                "entities": {
                    "session": {
                        "fields": {"ownerId": {"override": {"references": {"entity": "member"}}}}
                    }
                }
            }
        )
        override = ext.entities["session"].fields["ownerId"].override
        assert override["references"] == FieldReference(entity="member", field="id")


# =============================================================================
# Schemas
# =============================================================================


class TestSchemaFromDict:
    def test_schema(self):
        schema = schema_from_dict(
            {
                "entities": {
                    "session": {
                        "internal": True,
                        "fields": {
                            "token": {"type": "string", "required": True, "locked": True},
                            "userId": {"type": "string", "references": {"entity": "user"}},
                            "active": {"type": "boolean", "default": True},
                        },
                    }
                },
                "extend": {"all": {"tenantId": {"type": "string"}}},
            }
        )
        session = schema.entities["session"]
        assert session.internal is True
        assert session.fields["token"].locked is True
        assert session.fields["userId"].references == FieldReference("user")
        assert session.fields["active"].default is True
        assert session.fields["token"].default is NO_DEFAULT
        assert schema.extend["all"]["tenantId"].type == "string"

    def test_explicit_null_default_is_kept(self):
        schema = schema_from_dict(
            {"entities": {"x": {"fields": {"note": {"type": "text", "default": None}}}}}
        )
        assert schema.entities["x"].fields["note"].default is None

    def test_invalid_schema(self):
        with pytest.raises(PluginError, match="Invalid plugin schema"):
            schema_from_dict({"entities": {"x": {"colour": "red"}}})
