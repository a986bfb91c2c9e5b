"""Tool argument validation against the provider's JSON Schema."""

from __future__ import annotations

import logging
from typing import Any

from jsonschema import SchemaError
from jsonschema.exceptions import best_match
from jsonschema.validators import validator_for

from toolchat.tools.provider import ToolDefinition, normalize_schema

logger = logging.getLogger(__name__)


def validate_arguments(definition: ToolDefinition, arguments: dict[str, Any]) -> str | None:
    """
    Check *arguments* against the input schema of *definition*.

    Returns the most relevant violation as a message, or ``None`` when the
    arguments are acceptable.  Keys the schema does not mention are allowed
    unless it sets ``additionalProperties: false``.  A schema that is itself
    invalid accepts everything and the provider judges the call.
    """
    schema = normalize_schema(definition.input_schema)
    validator_cls = validator_for(schema)
    try:
        validator_cls.check_schema(schema)
    except SchemaError as exc:
        logger.warning("Tool %s has an invalid input schema: %s", definition.name, exc.message)
        return None

    error = best_match(validator_cls(schema).iter_errors(arguments))
    if error is None:
        return None
    path = ".".join(str(p) for p in error.absolute_path)
    return f"{path}: {error.message}" if path else error.message
