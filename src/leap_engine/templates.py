"""
leap_engine/templates.py - Fact Templates

Optional per-kind schemas checked before a fact is stored. For each
declared field a template can apply a default, enforce presence, check a
type and run a custom predicate.

Example:
    registry = TemplateRegistry()
    user = registry.deftemplate("user", {
        "name": {"type": "string", "required": True},
        "age": {"type": "number", "validate": lambda v: v >= 0},
        "tags": {"type": "array", "default": list},
    })
    registry.validate(user.create({"name": "Alice", "age": 30}))
    # {"name": "Alice", "age": 30, "kind": "user", "tags": []}
"""
from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, StrictBool, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import TemplateError, ValidationError
from .terms import KIND_KEY, is_number

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = ("string", "number", "boolean", "array", "object", "any")


class FieldSpec(BaseModel):
    """Schema definition for one template field."""

    type: StrictStr = Field(..., description="Primitive type name or template name")
    required: StrictBool = Field(default=False, description="Reject the fact when the value is None")
    default: Any = Field(default=None, description="Literal default or zero-argument factory")
    validator: Callable[[Any], Any] | None = Field(
        default=None,
        alias="validate",
        description="Extra predicate the value must satisfy",
    )

    model_config = {"frozen": True, "extra": "forbid", "populate_by_name": True}

    @field_validator("type")
    @classmethod
    def type_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("type must be a non-empty string")
        return v

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set

    def default_value(self) -> Any:
        return self.default() if callable(self.default) else self.default


@dataclass(frozen=True)
class Template:
    """A registered schema for one fact kind."""
    name: str
    fields: dict[str, FieldSpec]

    def create(self, data: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Return a copy of ``data`` stamped with this template's kind."""
        return {**(data or {}), KIND_KEY: self.name}


class TemplateRegistry:
    """Templates keyed by fact kind."""

    def __init__(self):
        self._templates: dict[str, Template] = {}

    def deftemplate(self, name: str, schema: Mapping[str, Any] | None = None) -> Template:
        """Register (or replace) the template for ``name``.

        Raises:
            TemplateError: if the name or any field definition is malformed
        """
        if not isinstance(name, str) or not name.strip():
            raise TemplateError("Template name must be a non-empty string")
        schema = {} if schema is None else schema
        if not isinstance(schema, Mapping):
            raise TemplateError(f"Schema for template '{name}' must be a mapping")

        fields: dict[str, FieldSpec] = {}
        for field_name, spec in schema.items():
            if isinstance(spec, FieldSpec):
                fields[field_name] = spec
                continue
            if not isinstance(spec, Mapping):
                raise TemplateError(
                    f"Template '{name}', field '{field_name}': field schema must be a mapping"
                )
            try:
                fields[field_name] = FieldSpec.model_validate(dict(spec))
            except PydanticValidationError as e:
                raise TemplateError(f"Template '{name}', field '{field_name}': {e}") from e

            if fields[field_name].required and callable(fields[field_name].default):
                logger.warning(
                    f"Template '{name}', field '{field_name}': default factory on a required "
                    f"field; the required check applies after the default"
                )

        template = Template(name=name, fields=fields)
        self._templates[name] = template
        logger.debug(f"Template defined: {name} ({len(fields)} fields)")
        return template

    def get(self, name: str) -> Template | None:
        return self._templates.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def clear(self) -> None:
        self._templates.clear()

    def validate(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Check ``data`` against the template for its kind.

        Returns:
            A copy of ``data`` with defaults applied (unchanged when no
            template is registered for the kind)

        Raises:
            ValidationError: on a missing required field, a type mismatch,
                a failed custom predicate or an unknown type name
        """
        result = dict(data)
        kind = result.get(KIND_KEY)
        template = self._templates.get(kind) if isinstance(kind, str) else None
        if template is None:
            return result

        for field_name, spec in template.fields.items():
            if field_name not in result and spec.has_default:
                result[field_name] = spec.default_value()

            value = result.get(field_name)
            if value is None:
                if spec.required:
                    raise ValidationError(
                        f"Field '{field_name}' is required for kind '{kind}' but is missing or None",
                        kind=kind, field=field_name, fact_data=data,
                    )
                continue

            if not self._type_matches(spec.type, value, kind, field_name, data):
                raise ValidationError(
                    f"Field '{field_name}' for kind '{kind}' expected type '{spec.type}' "
                    f"but got '{type(value).__name__}'. Value: {value!r}",
                    kind=kind, field=field_name, fact_data=data,
                )

            if spec.validator is not None:
                try:
                    ok = spec.validator(value)
                except Exception as e:
                    raise ValidationError(
                        f"Field '{field_name}' for kind '{kind}' validator raised: {e}",
                        kind=kind, field=field_name, fact_data=data,
                    ) from e
                if not ok:
                    raise ValidationError(
                        f"Field '{field_name}' for kind '{kind}' with value {value!r} "
                        f"failed custom validation",
                        kind=kind, field=field_name, fact_data=data,
                    )
        return result

    def _type_matches(self, expected: str, value: Any, kind: str, field_name: str, data: Any) -> bool:
        if expected == "string":
            return isinstance(value, str)
        if expected == "number":
            return is_number(value) and not math.isnan(value)
        if expected == "boolean":
            return isinstance(value, bool)
        if expected == "array":
            return isinstance(value, (list, tuple))
        if expected == "object":
            return isinstance(value, Mapping)
        if expected == "any":
            return True
        if expected in self._templates:
            # Shallow: only the nested value's kind is checked
            return isinstance(value, Mapping) and value.get(KIND_KEY) == expected
        raise ValidationError(
            f"Unknown type '{expected}' in schema for '{kind}.{field_name}'",
            kind=kind, field=field_name, fact_data=data,
        )
