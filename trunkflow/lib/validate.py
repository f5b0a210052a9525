"""
JSON Schema checks for the repository configuration.

Schemas ship inside the package under trunkflow/schemas/<name>.schema.json.
Only the most relevant violation is reported, with the dotted path of the
offending key.
"""

import json
from pathlib import Path

import jsonschema
from jsonschema.exceptions import best_match

from trunkflow.lib.errors import ConfigError

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


class ValidationError(ConfigError):
    """Configuration does not match its schema."""

    def __init__(self, schema_name: str, message: str, path: str | None = None):
        self.schema_name = schema_name
        self.path = path
        location = f" at {path}" if path else ""
        super().__init__(f"[{schema_name}] {message}{location}")


def load_schema(schema_name: str) -> dict:
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_path.exists():
        raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
    return json.loads(schema_path.read_text())


def validate(data: dict, schema_name: str) -> None:
    """
    Check data against the named schema.

    Raises:
        ValidationError: for the best matching violation, if any
    """
    validator = jsonschema.Draft7Validator(load_schema(schema_name))
    error = best_match(validator.iter_errors(data))
    if error is None:
        return
    path = ".".join(str(p) for p in error.absolute_path) or "(root)"
    raise ValidationError(schema_name, error.message, path)
