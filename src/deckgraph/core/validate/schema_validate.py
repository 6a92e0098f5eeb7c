from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from deckgraph.core.config import schema_path


def load_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


@lru_cache(maxsize=None)
def _validator(path: Path) -> Draft202012Validator:
    # NOTE: single-file schemas only (no external $ref)
    return Draft202012Validator(load_json(path))


def validate_instance(instance: Any, schema: Path | None = None) -> list[str]:
    """
    Validate a JSON-like instance against a JSON schema.
    Returns a list of human-readable error strings (empty if valid).
    Each error is formatted as: "- <jsonpath>: <message>"
    """
    path = schema or schema_path("package")
    if not path.exists():
        return [f"[ERR] schema not found: {path}"]

    errors = sorted(_validator(path).iter_errors(instance), key=lambda e: list(e.path))
    result: list[str] = []
    for e in errors:
        jp = "$"
        for p in e.path:
            jp += f"[{p!r}]" if isinstance(p, str) else f"[{p}]"
        result.append(f"- {jp}: {e.message}")
    return result


def validate_json_against_schema(schema: Path, instance_path: Path) -> list[str]:
    if not instance_path.exists():
        return [f"[ERR] instance not found: {instance_path}"]
    return validate_instance(load_json(instance_path), schema)


__all__ = ["load_json", "validate_instance", "validate_json_against_schema"]
