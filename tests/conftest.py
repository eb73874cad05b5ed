# Shared pytest fixtures
from __future__ import annotations
import os
import tempfile
from pathlib import Path

import pytest

from filefeed.logging.init import reset_logging
from filefeed.models.schema import Field, FieldType, SheetConfig, Severity, ValidationRule, WorkbookConfig


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("FILEFEED_CONFIG", raising=False)
        monkeypatch.delenv("FILEFEED_LOG_DIR", raising=False)
        reset_logging()
        yield p
        reset_logging()
        # .env 経由で設定された値を残さない
        for name in ("FILEFEED_CONFIG", "FILEFEED_LOG_DIR"):
            os.environ.pop(name, None)


@pytest.fixture()
def sample_config_yaml() -> str:
    return """name: CRM import
sheets:
  - slug: contacts
    name: Contacts
    fields:
      - key: email
        label: Email
        type: string
        required: true
        transform: lowercase
        rules:
          - type: email
      - key: age
        label: Age
        type: number
        rules:
          - type: min
            value: 0
          - type: max
            value: 130
            severity: warning
            message: "{label} looks unusual (row {row})"
      - key: subscribed
        label: Subscribed
        type: boolean
  - slug: companies
    name: Companies
    fields:
      - key: name
        label: Company name
        required: true
      - key: founded
        label: Founded
        type: date
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "workbook.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def email_age_fields() -> tuple[Field, ...]:
    return (
        Field(key="email", label="Email", type=FieldType.STRING, required=True),
        Field(key="age", label="Age", type=FieldType.NUMBER, required=False),
    )


@pytest.fixture()
def contact_fields() -> tuple[Field, ...]:
    return (
        Field(
            key="email",
            label="Email",
            type=FieldType.STRING,
            required=True,
            rules=(ValidationRule(kind="email"),),
        ),
        Field(
            key="age",
            label="Age",
            type=FieldType.NUMBER,
            rules=(
                ValidationRule(kind="min", params={"value": 0}),
                ValidationRule(kind="max", severity=Severity.WARNING, params={"value": 130}),
            ),
        ),
        Field(key="subscribed", label="Subscribed", type=FieldType.BOOLEAN),
    )


@pytest.fixture()
def workbook_config(contact_fields) -> WorkbookConfig:
    return WorkbookConfig(
        name="test",
        sheets=(
            SheetConfig(slug="contacts", name="Contacts", fields=contact_fields),
            SheetConfig(
                slug="companies",
                name="Companies",
                fields=(Field(key="name", label="Company name", required=True),),
            ),
        ),
    )
