"""Schema Validator - normalizes external schema validation into ValidationResult.

The rule language belongs to jsonschema; this module only turns its errors
into Violation records. Schemas can be plain JSON Schema mappings, pydantic
model classes, schema files (YAML or JSON), or response schemas looked up in
an OpenAPI document by operationId and status code.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

import yaml
from jsonschema import Draft202012Validator, ValidationError
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for
from pydantic import BaseModel
from referencing.exceptions import Unresolvable

from fluent_rest.models import ValidationResult, Violation


class SchemaLoadError(Exception):
    """Error loading a schema or OpenAPI document."""


class SchemaValidator(Protocol):
    def validate(self, schema: Any, value: Any) -> ValidationResult: ...


def resolve_schema(schema: Any) -> dict[str, Any]:
    """Turn the accepted schema forms into a JSON Schema mapping."""
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.model_json_schema()
    if isinstance(schema, dict):
        return schema
    raise TypeError(
        f"schema must be a JSON Schema mapping or a pydantic model class, got {type(schema).__name__}"
    )


def load_schema(schema_path: Path | str) -> dict[str, Any]:
    """Load a JSON Schema from a YAML or JSON file."""
    return _load_document(Path(schema_path))


def _load_document(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                document = yaml.safe_load(f)
            else:
                document = json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise SchemaLoadError(f"Failed to load {path}: {e}") from e
    if not isinstance(document, dict):
        raise SchemaLoadError(f"{path} must contain a mapping")
    return document


class JsonSchemaValidator:
    """Validates values with jsonschema, reporting every violation.

    The draft is chosen from the schema's $schema keyword, defaulting to
    Draft 2020-12.
    """

    def validate(self, schema: Any, value: Any) -> ValidationResult:
        schema = resolve_schema(schema)
        validator_cls = validator_for(schema, default=Draft202012Validator)

        try:
            validator_cls.check_schema(schema)
        except SchemaError as e:
            return ValidationResult(
                valid=False,
                violations=[Violation(path="$", message=f"Invalid schema: {e.message}", violation_type="invalid_schema")],
            )

        try:
            errors = sorted(
                validator_cls(schema).iter_errors(value),
                key=lambda e: error_path_to_jsonpath(e.absolute_path),
            )
        except Unresolvable as e:
            return ValidationResult(
                valid=False,
                violations=[Violation(path="$", message=f"Unresolvable schema reference: {e}", violation_type="invalid_schema")],
            )
        violations = [
            Violation(
                path=error_path_to_jsonpath(error.absolute_path),
                message=error.message,
                violation_type=classify_validation_error(error),
            )
            for error in errors
        ]
        return ValidationResult(valid=not violations, violations=violations)


def error_path_to_jsonpath(path) -> str:
    """Convert a jsonschema error path to JSONPath (e.g. "$.data.items[0].id")."""
    if not path:
        return "$"

    parts = ["$"]
    for segment in path:
        if isinstance(segment, int):
            parts.append(f"[{segment}]")
        else:
            parts.append(f".{segment}")
    return "".join(parts)


def classify_validation_error(error: ValidationError) -> str:
    """Classify a jsonschema error (extra_field, wrong_type, missing_required, ...)."""
    validator = error.validator

    if validator == "additionalProperties":
        return "extra_field"
    elif validator == "type":
        return "wrong_type"
    elif validator == "required":
        return "missing_required"
    elif validator == "enum":
        return "invalid_enum"
    elif validator in ("minimum", "maximum", "exclusiveMinimum", "exclusiveMaximum"):
        return "out_of_range"
    elif validator in ("minLength", "maxLength"):
        return "invalid_length"
    elif validator == "pattern":
        return "pattern_mismatch"
    elif validator == "format":
        return "invalid_format"
    else:
        return "validation_error"


# =============================================================================
# OpenAPI response schemas
# =============================================================================


class OpenApiSchemaSource:
    """Looks up response schemas in an OpenAPI document.

    Usage:
        source = OpenApiSchemaSource.from_file(Path("openapi.yaml"))
        schema = source.response_schema("getWidget", 200)
    """

    def __init__(self, document: dict[str, Any]) -> None:
        self._spec = document
        self._schema_cache: dict[tuple[str, int], dict[str, Any] | None] = {}

    @classmethod
    def from_file(cls, spec_path: Path | str) -> OpenApiSchemaSource:
        return cls(_load_document(Path(spec_path)))

    def response_schema(self, operation_id: str, status_code: int) -> dict[str, Any] | None:
        """JSON response schema for operation+status, or None if undefined.

        Status lookup order: exact code, wildcard (2XX), then "default".
        """
        cache_key = (operation_id, status_code)
        if cache_key not in self._schema_cache:
            self._schema_cache[cache_key] = self._extract_response_schema(operation_id, status_code)
        return self._schema_cache[cache_key]

    def _extract_response_schema(self, operation_id: str, status_code: int) -> dict[str, Any] | None:
        operation = self._find_operation(operation_id)
        if operation is None:
            return None

        responses = operation.get("responses", {})
        response_def = responses.get(str(status_code))
        if response_def is None:
            response_def = responses.get(f"{status_code // 100}XX")
        if response_def is None:
            response_def = responses.get("default")
        if response_def is None:
            return None

        response_def = self._resolve_ref(response_def)
        schema = response_def.get("content", {}).get("application/json", {}).get("schema")
        if schema is None:
            return None
        resolved = self._resolve_schema_refs(schema)
        if _has_local_ref(resolved) and "components" in self._spec:
            # Refs left by cycles point into the document's components
            resolved = {**resolved, "components": self._spec["components"]}
        return resolved

    def _find_operation(self, operation_id: str) -> dict[str, Any] | None:
        for path_item in self._spec.get("paths", {}).values():
            if not isinstance(path_item, dict):
                continue
            for key, operation in path_item.items():
                # Skip non-operation keys like 'parameters', '$ref'
                if not isinstance(operation, dict) or key.startswith("$"):
                    continue
                if operation.get("operationId") == operation_id:
                    return operation
        return None

    def _resolve_ref(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Resolve a local $ref ("#/components/..."). External refs are left as-is."""
        if not isinstance(obj, dict):
            return obj
        ref = obj.get("$ref")
        if ref is None or not ref.startswith("#/"):
            return obj

        resolved: Any = self._spec
        for part in ref[2:].split("/"):
            if not isinstance(resolved, dict):
                return obj
            resolved = resolved.get(part, {})
        return resolved if isinstance(resolved, dict) else obj

    def _resolve_schema_refs(
        self, schema: dict[str, Any], visited: frozenset[str] = frozenset()
    ) -> dict[str, Any]:
        """Recursively inline $refs. Cycles are left as unresolved $refs."""
        if not isinstance(schema, dict):
            return schema

        if "$ref" in schema:
            ref = schema["$ref"]
            if ref in visited:
                return schema
            return self._resolve_schema_refs(self._resolve_ref(schema), visited | {ref})

        result: dict[str, Any] = {}
        for key, value in schema.items():
            if key == "properties" and isinstance(value, dict):
                result[key] = {prop: self._resolve_schema_refs(sub, visited) for prop, sub in value.items()}
            elif key in ("items", "additionalProperties") and isinstance(value, dict):
                result[key] = self._resolve_schema_refs(value, visited)
            elif key in ("allOf", "anyOf", "oneOf") and isinstance(value, list):
                result[key] = [self._resolve_schema_refs(item, visited) for item in value]
            else:
                result[key] = value
        return result


def _has_local_ref(node: Any) -> bool:
    """True if a "#/..." $ref remains anywhere in node."""
    if isinstance(node, dict):
        ref = node.get("$ref")
        if isinstance(ref, str) and ref.startswith("#/"):
            return True
        return any(_has_local_ref(value) for value in node.values())
    if isinstance(node, list):
        return any(_has_local_ref(item) for item in node)
    return False
