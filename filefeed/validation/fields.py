from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

from ..models.row_data import ValidationFinding
from ..models.schema import UNSET, Field, Severity, ValidationRule
from ..transform.values import is_unset

"""Field validator.

validate_field() checks one coerced value against its Field:

- required + absent value: exactly one error finding, nothing else runs
- optional + absent value: no findings
- otherwise every rule in Field.rules is evaluated (no short circuit) so the
  caller gets all messages at once

Rule checks are pure functions of (value, rule). The row index only feeds
message interpolation.
"""

__all__ = [
    "validate_field",
    "RULE_CHECKS",
    "DEFAULT_MESSAGES",
]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

RuleCheck = Callable[[Any, Mapping[str, Any]], bool]


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


def _check_pattern(value: Any, params: Mapping[str, Any]) -> bool:
    try:
        return re.fullmatch(str(params["pattern"]), str(value)) is not None
    except re.error:
        return False


def _check_email(value: Any, params: Mapping[str, Any]) -> bool:
    return _EMAIL_RE.match(str(value)) is not None


def _check_min(value: Any, params: Mapping[str, Any]) -> bool:
    num = _as_number(value)
    return num is not None and num >= params["value"]


def _check_max(value: Any, params: Mapping[str, Any]) -> bool:
    num = _as_number(value)
    return num is not None and num <= params["value"]


def _check_min_length(value: Any, params: Mapping[str, Any]) -> bool:
    return len(str(value)) >= int(params["value"])


def _check_max_length(value: Any, params: Mapping[str, Any]) -> bool:
    return len(str(value)) <= int(params["value"])


def _check_one_of(value: Any, params: Mapping[str, Any]) -> bool:
    allowed = params["values"]
    if isinstance(value, str):
        return value.lower() in {str(v).lower() for v in allowed}
    return value in allowed


def _check_not_blank(value: Any, params: Mapping[str, Any]) -> bool:
    return str(value).strip() != ""


RULE_CHECKS: dict[str, RuleCheck] = {
    "pattern": _check_pattern,
    "email": _check_email,
    "min": _check_min,
    "max": _check_max,
    "min_length": _check_min_length,
    "max_length": _check_max_length,
    "one_of": _check_one_of,
    "not_blank": _check_not_blank,
}

DEFAULT_MESSAGES: dict[str, str] = {
    "required": "{label} is required",
    "pattern": "{label} does not match the expected format",
    "email": "{label} must be a valid email address",
    "min": "{label} must be at least {value}",
    "max": "{label} must be at most {value}",
    "min_length": "{label} must be at least {value} characters",
    "max_length": "{label} must be at most {value} characters",
    "one_of": "{label} must be one of {values}",
    "not_blank": "{label} must not be blank",
}


class _TemplateVars(dict):
    # 未知のプレースホルダはそのまま残す
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def _render(template: str, field: Field, value: Any, row_index: int, params: Mapping[str, Any]) -> str:
    variables = _TemplateVars(params)
    # min/max の {value} は閾値を指すため params を優先する
    variables.setdefault("value", "" if value is UNSET else value)
    variables["field"] = field.key
    variables["label"] = field.label
    variables["row"] = row_index + 1
    try:
        return template.format_map(variables)
    except (ValueError, IndexError):
        return template


def _rule_message(rule: ValidationRule, field: Field, value: Any, row_index: int) -> str:
    template = rule.message or DEFAULT_MESSAGES.get(rule.kind, "{label} is invalid")
    return _render(template, field, value, row_index, rule.params)


def validate_field(value: Any, field: Field, row_index: int = 0) -> list[ValidationFinding]:
    """Validate one coerced value against ``field``.

    Parameters
    ----------
    value: output of the value transformer (or a registry transform)
    field: target field definition
    row_index: 0-based row position, used only in messages ({row} is 1-based)

    Returns
    -------
    Findings in rule order; empty when the value passes every rule.
    """
    if is_unset(value):
        if field.required:
            msg = _render(DEFAULT_MESSAGES["required"], field, value, row_index, {})
            return [ValidationFinding(field=field.key, message=msg, severity=Severity.ERROR)]
        return []

    findings: list[ValidationFinding] = []
    for rule in field.rules:
        check = RULE_CHECKS.get(rule.kind)
        if check is None:
            # 未知の kind は無視
            continue
        try:
            ok = check(value, rule.params)
        except (KeyError, TypeError, ValueError):
            ok = False
        if not ok:
            findings.append(
                ValidationFinding(
                    field=field.key,
                    message=_rule_message(rule, field, value, row_index),
                    severity=rule.severity,
                )
            )
    return findings
