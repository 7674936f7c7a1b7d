"""Tests for fact templates."""

from __future__ import annotations

import logging

import pytest

from leap_engine import FieldSpec, TemplateError, TemplateRegistry, ValidationError


@pytest.fixture
def registry() -> TemplateRegistry:
    reg = TemplateRegistry()
    reg.deftemplate("user", {
        "name": {"type": "string", "required": True},
        "age": {"type": "number", "validate": lambda v: v >= 0},
        "tags": {"type": "array", "default": list},
        "active": {"type": "boolean", "default": True},
    })
    return reg


class TestDeftemplate:
    def test_fields_parsed(self, registry):
        template = registry.get("user")
        assert set(template.fields) == {"name", "age", "tags", "active"}
        assert isinstance(template.fields["name"], FieldSpec)
        assert template.fields["name"].required is True
        assert "user" in registry

    def test_create_stamps_kind(self, registry):
        assert registry.get("user").create({"name": "Ann"}) == {"name": "Ann", "kind": "user"}

    @pytest.mark.parametrize("schema", [
        {"name": {"required": True}},
        {"name": {"type": ""}},
        {"name": {"type": "string", "required": "yes"}},
        {"name": {"type": "string", "unknown": 1}},
        {"name": "string"},
    ])
    def test_malformed_schema(self, schema):
        with pytest.raises(TemplateError):
            TemplateRegistry().deftemplate("bad", schema)

    def test_blank_name(self):
        with pytest.raises(TemplateError):
            TemplateRegistry().deftemplate(" ", {})

    def test_required_with_factory_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="leap_engine.templates"):
            TemplateRegistry().deftemplate("t", {"x": {"type": "array", "required": True, "default": list}})
        assert "default factory on a required field" in caplog.text

    def test_redefinition_replaces(self, registry):
        registry.deftemplate("user", {"email": {"type": "string"}})
        assert set(registry.get("user").fields) == {"email"}


class TestValidate:
    def test_defaults_applied_to_copy(self, registry):
        data = {"kind": "user", "name": "Ann"}
        result = registry.validate(data)
        assert result == {"kind": "user", "name": "Ann", "tags": [], "active": True}
        assert "tags" not in data

    def test_default_factory_gives_fresh_values(self, registry):
        a = registry.validate({"kind": "user", "name": "a"})
        b = registry.validate({"kind": "user", "name": "b"})
        assert a["tags"] is not b["tags"]

    def test_untemplated_kind_passes_through(self, registry):
        assert registry.validate({"kind": "order", "x": 1}) == {"kind": "order", "x": 1}

    def test_required_missing(self, registry):
        with pytest.raises(ValidationError) as exc_info:
            registry.validate({"kind": "user"})
        assert exc_info.value.kind == "user"
        assert exc_info.value.field == "name"

    def test_required_none(self, registry):
        with pytest.raises(ValidationError):
            registry.validate({"kind": "user", "name": None})

    def test_optional_none_skipped(self, registry):
        assert registry.validate({"kind": "user", "name": "a", "age": None})["age"] is None

    @pytest.mark.parametrize("field,value", [
        ("name", 5),
        ("age", "30"),
        ("age", True),
        ("age", float("nan")),
        ("tags", "a,b"),
        ("active", 1),
    ])
    def test_type_mismatch(self, registry, field, value):
        data = {"kind": "user", "name": "a", field: value}
        with pytest.raises(ValidationError, match="expected type"):
            registry.validate(data)

    def test_custom_validator_rejects(self, registry):
        with pytest.raises(ValidationError, match="failed custom validation"):
            registry.validate({"kind": "user", "name": "a", "age": -1})

    def test_custom_validator_raising(self):
        reg = TemplateRegistry()
        reg.deftemplate("t", {"x": {"type": "any", "validate": lambda v: v["missing"]}})
        with pytest.raises(ValidationError, match="validator raised"):
            reg.validate({"kind": "t", "x": {}})

    def test_template_typed_field_is_shallow(self, registry):
        registry.deftemplate("team", {"lead": {"type": "user"}})
        assert registry.validate({"kind": "team", "lead": {"kind": "user"}})
        with pytest.raises(ValidationError):
            registry.validate({"kind": "team", "lead": {"kind": "order"}})

    def test_unknown_type_name(self):
        reg = TemplateRegistry()
        reg.deftemplate("t", {"x": {"type": "uuid"}})
        with pytest.raises(ValidationError, match="Unknown type"):
            reg.validate({"kind": "t", "x": "abc"})
