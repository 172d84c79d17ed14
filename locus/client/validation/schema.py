"""JSON Schema validation of response payloads.

Architecture:
    Validators are compiled once per schema ``$id`` and kept in a class-level
    cache shared by every SchemaValidator. Reference schemas passed alongside
    the primary one are registered in a ``referencing.Registry`` so ``$ref``
    lookups by ``$id`` resolve without network access.

Design Decisions:
    - Draft selection follows the primary schema's ``$schema``; schemas
      without one are treated as Draft 7
    - Schemas lacking ``$id`` share the "generic" cache slot, so only the
      first of them is ever compiled
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any, Generic, TypeVar

from jsonschema import Draft7Validator, SchemaError
from jsonschema.protocols import Validator
from jsonschema.validators import validator_for
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT7

from ..core.exceptions import ResponseValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

GENERIC_SCHEMA_ID = "generic"


class SchemaValidator(Generic[T]):
    """Validate data against a schema, optionally converting it afterwards."""

    _validator_cache: dict[str, Validator] = {}

    def validate(
        self,
        data: Any,
        schema: dict[str, Any] | Sequence[dict[str, Any]],
        converter: Callable[[Any], T] | None = None,
    ) -> T | Any:
        """Validate ``data`` against ``schema`` (or ``[primary, *references]``).

        Raises:
            ResponseValidationError: If the data does not match the schema
            SchemaError: If the schema itself cannot be compiled
        """
        if isinstance(schema, (list, tuple)):
            primary, references = schema[0], list(schema[1:])
        else:
            primary, references = schema, []

        schema_id = primary.get("$id")
        if schema_id is None:
            logger.warning("Attempting validation of a schema without an $id property")
            schema_id = GENERIC_SCHEMA_ID

        validator = self._validator_cache.get(schema_id)
        if validator is None:
            validator = self._compile(schema_id, primary, references)
            self._validator_cache[schema_id] = validator

        errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
        if errors:
            raise ResponseValidationError(
                f"Provided data does not match the schema '{schema_id}'",
                schema_id=schema_id,
                errors=[_describe(error) for error in errors],
            )

        if converter is not None:
            return converter(data)
        return data

    @classmethod
    def clear_cache(cls) -> None:
        cls._validator_cache.clear()

    @staticmethod
    def _compile(
        schema_id: str, primary: dict[str, Any], references: list[dict[str, Any]]
    ) -> Validator:
        try:
            validator_class = validator_for(primary, default=Draft7Validator)
            validator_class.check_schema(primary)
            registry: Registry = Registry()
            for reference in references:
                reference_id = reference.get("$id")
                if reference_id is None:
                    logger.warning("Ignoring reference schema without an $id property")
                    continue
                resource = Resource.from_contents(reference, default_specification=DRAFT7)
                registry = registry.with_resource(reference_id, resource)
            return validator_class(primary, registry=registry)
        except SchemaError:
            logger.error("Failed to compile validation routine for schema %s", schema_id)
            raise


def _describe(error: Any) -> str:
    location = "/".join(str(part) for part in error.absolute_path) or "<root>"
    return f"{location}: {error.message}"
