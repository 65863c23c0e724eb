"""ADLEDGER — Meta Action List Extraction.

Meta returns "labeled action" fields (`actions`, `action_values`,
`cost_per_action_type`, `video_*_watched_actions`, ...) in several shapes
depending on the field and the API version:

    [{"action_type": "purchase", "value": "5"}, ...]   list of entries
    {"action_type": "video_view", "value": "80"}       single entry
    "80" / 80                                          bare scalar
    '[{"action_type": "video_view", "value": "80"}]'   JSON-encoded string

`normalize_actions` narrows every shape to a list of `ActionEntry` once,
and everything downstream works on that list only. An entry without a
label stands for the field's sole action, so it only answers lookups
on single-purpose fields (`find_action_value(..., wildcard=True)`).
Nothing in here raises; unreadable values count as 0.
"""

import json
import math
from typing import Any, Iterable, List, NamedTuple, Optional


class ActionEntry(NamedTuple):
    label: Optional[str]
    value: float


def safe_float(value: Any) -> float:
    """Safely convert a value to a finite float, else 0."""
    if isinstance(value, bool):
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(result) or math.isinf(result):
        return 0.0
    return result


def _entry_from_mapping(item: dict) -> ActionEntry:
    label = item.get("action_type") or None
    return ActionEntry(label, safe_float(item.get("value", 0)))


def _is_scalar(raw: Any) -> bool:
    return isinstance(raw, (int, float, str)) and not isinstance(raw, bool)


def normalize_actions(raw: Any) -> List[ActionEntry]:
    """Narrow any supported action encoding to a list of entries."""
    if raw is None:
        return []

    if isinstance(raw, str):
        text = raw.strip()
        if text[:1] in ("[", "{"):
            try:
                return normalize_actions(json.loads(text))
            except ValueError:
                return []
        return [ActionEntry(None, safe_float(text))]

    if isinstance(raw, dict):
        return [_entry_from_mapping(raw)]

    if isinstance(raw, (list, tuple)):
        entries: List[ActionEntry] = []
        for item in raw:
            if isinstance(item, dict):
                entries.append(_entry_from_mapping(item))
            elif _is_scalar(item):
                entries.append(ActionEntry(None, safe_float(item)))
        return entries

    if _is_scalar(raw):
        return [ActionEntry(None, safe_float(raw))]

    return []


def find_action_value(
    entries: Iterable[ActionEntry], label: str, wildcard: bool = False
) -> float:
    """Value for `label` in already-normalized entries, or 0.

    Unlabeled entries only answer when `wildcard` is set, which is right
    for single-purpose fields (`video_p25_watched_actions`, ...) and wrong
    for `actions` / `action_values` / `cost_per_action_type`, where one
    field carries many outcomes. An exact label match beats a wildcard.
    """
    fallback: Optional[float] = None
    for entry in entries:
        if entry.label == label:
            return entry.value
        if wildcard and entry.label is None and fallback is None:
            fallback = entry.value
    return fallback if fallback is not None else 0.0


def extract_action_value(raw: Any, label: str, wildcard: bool = True) -> float:
    """Return the numeric value for `label` from any action encoding, or 0."""
    return find_action_value(normalize_actions(raw), label, wildcard)
