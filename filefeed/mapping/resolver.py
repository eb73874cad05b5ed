from __future__ import annotations

import logging
import re
from collections.abc import Collection, Iterable, Mapping, Sequence

from ..models.row_data import FieldMapping
from ..models.schema import Field

"""Mapping resolver: source column -> target field assignments.

MappingState holds the user's choices. It never triggers row processing;
the store runs the Row Processor only on an explicit continue.

validate_pipeline_config() is the single gate for leaving the mapping step.
Its "missing mapping for required field" message text is matched by callers
and must not change.
"""

__all__ = [
    "MISSING_REQUIRED_MARKER",
    "MappingPayloadError",
    "MappingState",
    "to_canonical_field_mappings",
    "validate_pipeline_config",
    "suggest_mapping",
]

logger = logging.getLogger(__name__)

MISSING_REQUIRED_MARKER = "missing mapping for required field"


class MappingPayloadError(ValueError):
    """Raised when a mapping-change payload is not a str -> str|None mapping."""


class MappingState:
    """Sparse source column -> target field key assignment.

    At most one source maps to a target: assigning a second source to an
    already mapped target clears the earlier source (set to None).
    Insertion order of sources is kept and drives canonical ordering.
    """

    def __init__(self, initial: Mapping[str, str | None] | None = None) -> None:
        self._mapping: dict[str, str | None] = {}
        if initial:
            self.update(initial)

    def set_mapping(self, source: str, target: str | None) -> None:
        if target is not None:
            for other, current in self._mapping.items():
                if other != source and current == target:
                    self._mapping[other] = None
        self._mapping[source] = target

    def update(self, payload: Mapping[str, str | None]) -> None:
        """Apply a bulk mapping-change payload, validated once up front."""
        if not isinstance(payload, Mapping):
            raise MappingPayloadError(f"mapping payload must be a mapping, got {type(payload).__name__}")
        for source, target in payload.items():
            if not isinstance(source, str):
                raise MappingPayloadError(f"source column must be str: {source!r}")
            if target is not None and not isinstance(target, str):
                raise MappingPayloadError(f"target for '{source}' must be str or None: {target!r}")
        for source, target in payload.items():
            self.set_mapping(source, target or None)

    def target_for(self, source: str) -> str | None:
        return self._mapping.get(source)

    def source_for(self, target: str) -> str | None:
        for source, current in self._mapping.items():
            if current == target:
                return source
        return None

    def mapped_targets(self) -> list[str]:
        return [t for t in self._mapping.values() if t is not None]

    def clear(self) -> None:
        self._mapping.clear()

    def as_dict(self) -> dict[str, str | None]:
        return dict(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MappingState):
            return self._mapping == other._mapping
        return NotImplemented

    def __repr__(self) -> str:  # pragma: no cover (trivial)
        return f"MappingState({self._mapping!r})"


def to_canonical_field_mappings(
    mapping_state: MappingState | Mapping[str, str | None],
) -> list[FieldMapping]:
    """Convert a sparse mapping into ordered FieldMapping pairs.

    Unmapped sources are dropped. When a plain dict maps several sources to
    the same target, only the last one is kept.
    """
    raw = mapping_state.as_dict() if isinstance(mapping_state, MappingState) else dict(mapping_state)
    by_target: dict[str, str] = {}
    for source, target in raw.items():
        if not target:
            continue
        by_target.pop(target, None)  # 後勝ち + 順序も後ろへ
        by_target[target] = source
    order = {source: i for i, source in enumerate(raw)}
    pairs = sorted(by_target.items(), key=lambda item: order[item[1]])
    return [FieldMapping(source=source, target=target) for target, source in pairs]


def validate_pipeline_config(
    fields: Sequence[Field],
    field_mappings: Iterable[FieldMapping],
    available_transform_ids: Collection[str] | None = None,
) -> list[str]:
    """Check that a mapping is complete enough to process rows.

    Checks, in order:
    1. every required field has a mapped source column
    2. every transform named by a field or a mapping exists in
       ``available_transform_ids`` (skipped when it is None)

    Returns:
        Human readable error strings; empty when the user may proceed.
    """
    mappings = list(field_mappings)
    mapped = {m.target for m in mappings if m.target and m.source}
    errors: list[str] = []

    for f in fields:
        if f.required and f.key not in mapped:
            errors.append(f"{MISSING_REQUIRED_MARKER} '{f.key}' ({f.label})")

    if available_transform_ids is not None:
        known = set(available_transform_ids)
        for f in fields:
            if f.transform and f.transform not in known:
                errors.append(f"unknown transform '{f.transform}' for field '{f.key}'")
        for m in mappings:
            if m.transform and m.transform not in known:
                errors.append(f"unknown transform '{m.transform}' for mapping '{m.source}' -> '{m.target}'")
    return errors


_NORMALIZE_RE = re.compile(r"[\s_\-]+")


def _normalize_header(text: str) -> str:
    return _NORMALIZE_RE.sub("", text).lower()


def suggest_mapping(headers: Sequence[str], fields: Sequence[Field]) -> dict[str, str | None]:
    """Initial mapping matching headers to field key or label.

    Comparison ignores case, whitespace, '_' and '-'. Each field is offered
    to the first matching header only; unmatched headers map to None.
    """
    lookup: dict[str, str] = {}
    for f in fields:
        lookup.setdefault(_normalize_header(f.key), f.key)
        lookup.setdefault(_normalize_header(f.label), f.key)

    taken: set[str] = set()
    suggestion: dict[str, str | None] = {}
    for header in headers:
        target = lookup.get(_normalize_header(str(header)))
        if target is not None and target not in taken:
            taken.add(target)
            suggestion[str(header)] = target
        else:
            suggestion[str(header)] = None
    logger.debug(f"suggested mapping: {suggestion}")
    return suggestion
