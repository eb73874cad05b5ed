from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.schema import RULE_KINDS, Field, FieldType, Severity, SheetConfig, ValidationRule, WorkbookConfig

"""Workbook config loader.

Responsibilities:
- Load the workbook YAML (sheets -> fields -> rules)
- Validate it against the packaged JSON schema (workbook_schema.json)
- Check what the schema cannot express (unique keys, rule params, regex)
- Build the frozen Schema Model dataclasses
"""

__all__ = [
    "ConfigError",
    "SCHEMA_PATH",
    "load_config",
    "parse_config",
]

SCHEMA_PATH = Path(__file__).parent / "workbook_schema.json"

# rule エントリのうち params に入れないキー
_RULE_META_KEYS = {"type", "severity", "message"}


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing/invalid, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path)
        raise ConfigError(f"config validation failed at '{location}': {e.message}") from e


def _build_rule(raw: dict[str, Any], where: str) -> ValidationRule:
    kind = raw["type"]
    params = {k: v for k, v in raw.items() if k not in _RULE_META_KEYS}
    missing = [p for p in RULE_KINDS[kind] if p not in params]
    if missing:
        raise ConfigError(f"{where}: rule '{kind}' missing params: {missing}")
    if kind == "pattern":
        try:
            re.compile(str(params["pattern"]))
        except re.error as e:
            raise ConfigError(f"{where}: invalid pattern {params['pattern']!r}: {e}") from e
    if kind == "one_of" and not isinstance(params["values"], list):
        raise ConfigError(f"{where}: rule 'one_of' expects a list of values")
    return ValidationRule(
        kind=kind,
        severity=Severity(raw.get("severity", "error")),
        message=raw.get("message"),
        params=params,
    )


def _build_field(raw: dict[str, Any], sheet_slug: str) -> Field:
    key = raw["key"]
    where = f"sheet '{sheet_slug}' field '{key}'"
    return Field(
        key=key,
        label=raw.get("label") or key,
        type=FieldType(raw.get("type", "string")),
        required=bool(raw.get("required", False)),
        rules=tuple(_build_rule(r, where) for r in raw.get("rules") or []),
        transform=raw.get("transform"),
    )


def parse_config(data: dict[str, Any]) -> WorkbookConfig:
    """Validate an already decoded config mapping and build the models."""
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")
    _validate_config_schema(data)

    sheets: list[SheetConfig] = []
    slugs: set[str] = set()
    for raw_sheet in data["sheets"]:
        slug = raw_sheet["slug"]
        if slug in slugs:
            raise ConfigError(f"duplicate sheet slug: {slug}")
        slugs.add(slug)
        fields = tuple(_build_field(f, slug) for f in raw_sheet["fields"])
        keys = [f.key for f in fields]
        dupes = sorted({k for k in keys if keys.count(k) > 1})
        if dupes:
            raise ConfigError(f"sheet '{slug}' has duplicate field keys: {dupes}")
        sheets.append(SheetConfig(slug=slug, name=raw_sheet.get("name") or slug, fields=fields))

    return WorkbookConfig(name=data.get("name", "workbook"), sheets=tuple(sheets))


def load_config(path: Path) -> WorkbookConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    return parse_config(data)
