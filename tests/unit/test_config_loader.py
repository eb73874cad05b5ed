from __future__ import annotations
import pytest
from pathlib import Path
from filefeed.config.loader import ConfigError, load_config, parse_config
from filefeed.models.schema import FieldType, Severity


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.name == "CRM import"
    assert [s.slug for s in cfg.sheets] == ["contacts", "companies"]
    contacts = cfg.sheet("contacts")
    email = contacts.field_by_key("email")
    assert email.required is True
    assert email.transform == "lowercase"
    assert email.rules[0].kind == "email"
    age = contacts.field_by_key("age")
    assert age.type is FieldType.NUMBER
    assert age.rules[0].params == {"value": 0}
    assert age.rules[1].severity is Severity.WARNING
    assert age.rules[1].message == "{label} looks unusual (row {row})"


def test_load_config_defaults(write_config: Path):
    cfg = load_config(write_config)
    name = cfg.sheet("companies").field_by_key("name")
    assert name.type is FieldType.STRING
    assert name.label == "Company name"
    subscribed = cfg.sheet("contacts").field_by_key("subscribed")
    assert subscribed.required is False
    assert subscribed.rules == ()


def test_load_config_missing_file(temp_workdir: Path):
    missing = temp_workdir / "config" / "not_exists.yml"
    with pytest.raises(ConfigError):
        load_config(missing)


def test_load_config_invalid_yaml(temp_workdir: Path):
    p = temp_workdir / "config" / "bad.yml"
    p.write_text("sheets: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError) as e:
        load_config(p)
    assert "invalid yaml" in str(e.value)


def test_load_config_missing_required(write_config: Path):
    write_config.write_text("name: x\n", encoding="utf-8")
    with pytest.raises(ConfigError) as e:
        load_config(write_config)
    assert "config validation failed" in str(e.value)


def _config(fields: list[dict]) -> dict:
    return {"sheets": [{"slug": "s", "fields": fields}]}


def test_unknown_field_type_rejected():
    with pytest.raises(ConfigError):
        parse_config(_config([{"key": "a", "type": "currency"}]))


def test_unknown_rule_kind_rejected():
    with pytest.raises(ConfigError):
        parse_config(_config([{"key": "a", "rules": [{"type": "luhn"}]}]))


def test_rule_missing_params_rejected():
    with pytest.raises(ConfigError) as e:
        parse_config(_config([{"key": "a", "rules": [{"type": "min"}]}]))
    assert "missing params" in str(e.value)


def test_invalid_pattern_rejected():
    with pytest.raises(ConfigError) as e:
        parse_config(_config([{"key": "a", "rules": [{"type": "pattern", "pattern": "("}]}]))
    assert "invalid pattern" in str(e.value)


def test_duplicate_field_keys_rejected():
    with pytest.raises(ConfigError) as e:
        parse_config(_config([{"key": "a"}, {"key": "a"}]))
    assert "duplicate field keys" in str(e.value)


def test_duplicate_sheet_slugs_rejected():
    data = {"sheets": [{"slug": "s", "fields": [{"key": "a"}]}, {"slug": "s", "fields": [{"key": "b"}]}]}
    with pytest.raises(ConfigError):
        parse_config(data)


def test_root_must_be_mapping():
    with pytest.raises(ConfigError):
        parse_config(["not", "a", "mapping"])  # type: ignore[arg-type]
