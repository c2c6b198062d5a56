"""
Text codec for structured lists stored inside free-text phase fields.

Phase fields such as ``struggles`` or ``opportunities`` stay plain strings
so every backend can store them without a schema change. Inside the string
lives a JSON array of small items. Text written before the structured
editors existed is plain prose separated by newlines, semicolons or
bullets; the parsers turn that into minimal items instead of dropping it.

    parse_*      never raise; blank input → []
    serialize_*  always emit the JSON-array form, so a save upgrades legacy text
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field

from journeymap.core.entities import JOB_TAGS, PRIORITIES, Record
from journeymap.utils.helpers import generate_id

COMMENT_KEY_SEP = "::"

_LEGACY_SPLIT = re.compile(r"\n|;|•")


@dataclass(frozen=True)
class StruggleItem(Record):
    text: str = ""
    tag: str = "Medium"


@dataclass(frozen=True)
class CustomerJobItem(Record):
    name: str = ""
    tag: str = "Functional"
    description: str | None = None
    struggles: list = field(default_factory=list)
    functional_dimensions: list = field(default_factory=list)
    social_dimensions: list = field(default_factory=list)
    emotional_dimensions: list = field(default_factory=list)
    solutions_and_workarounds: str | None = None
    is_priority: bool = False


@dataclass(frozen=True)
class OpportunityItem(Record):
    id: str = ""
    name: str = ""
    tag: str = "Medium"
    description: str | None = None
    point_of_differentiation: str | None = None
    critical_assumptions: str | None = None
    is_priority: bool = False


@dataclass(frozen=True)
class RelatedDocument(Record):
    id: str = ""
    label: str = ""
    url: str = ""


# ── Shared helpers ────────────────────────────────────────────────────


def _load_array(raw: str | None):
    """Return (items, ok). ok=False means the text is not JSON at all."""
    if not raw or not raw.strip():
        return [], True
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None, False
    return (parsed if isinstance(parsed, list) else []), True


def _legacy_lines(raw: str) -> list[str]:
    return [s.strip() for s in _LEGACY_SPLIT.split(raw) if s.strip()]


def _str_or_none(value):
    return value if isinstance(value, str) else None


def _strings(value) -> list:
    if not isinstance(value, list):
        return []
    return [s for s in value if isinstance(s, str)]


def _dump(items) -> str:
    return json.dumps([i.to_dict() for i in items], ensure_ascii=False)


# ── Plain lists ───────────────────────────────────────────────────────


def parse_list(raw: str | None) -> list[str]:
    """Parse newline/semicolon/bullet separated text into trimmed strings."""
    if not raw or not raw.strip():
        return []
    return _legacy_lines(raw)


def serialize_list(items: list[str]) -> str:
    return "\n".join(items)


# ── Struggles ─────────────────────────────────────────────────────────


def parse_struggles(raw: str | None) -> list[StruggleItem]:
    items, ok = _load_array(raw)
    if not ok:
        return [StruggleItem(text=line, tag="Medium") for line in _legacy_lines(raw)]
    return [
        StruggleItem(text=item["text"], tag=item["tag"])
        for item in items
        if isinstance(item, dict)
        and isinstance(item.get("text"), str)
        and item.get("tag") in PRIORITIES
    ]


def serialize_struggles(items: list[StruggleItem]) -> str:
    return _dump(items)


# ── Customer jobs (legacy embedded job list) ──────────────────────────


def _job_tag(tag) -> str:
    if tag == "Social Emotional":
        return "Social"
    if tag in JOB_TAGS:
        return tag
    return "Functional"


def parse_customer_jobs(raw: str | None) -> list[CustomerJobItem]:
    items, ok = _load_array(raw)
    if not ok:
        return [CustomerJobItem(name=line) for line in _legacy_lines(raw)]

    result = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name, text = item.get("name"), item.get("text")
        if not isinstance(name, str) and not isinstance(text, str):
            continue
        if isinstance(name, str) and name.strip():
            name = name.strip()
        elif isinstance(text, str):
            name = text.strip()
        else:
            name = "Untitled job"
        result.append(CustomerJobItem(
            name=name,
            tag=_job_tag(item.get("tag")),
            description=_str_or_none(item.get("description")),
            struggles=_strings(item.get("struggles")),
            functional_dimensions=_strings(item.get("functionalDimensions")),
            social_dimensions=_strings(item.get("socialDimensions")),
            emotional_dimensions=_strings(item.get("emotionalDimensions")),
            solutions_and_workarounds=_str_or_none(item.get("solutionsAndWorkarounds")),
            is_priority=bool(item.get("isPriority")),
        ))
    return result


def serialize_customer_jobs(items: list[CustomerJobItem]) -> str:
    return _dump(items)


# ── Opportunity items (legacy embedded opportunity list) ──────────────


def parse_opportunity_items(raw: str | None) -> list[OpportunityItem]:
    items, ok = _load_array(raw)
    if not ok:
        return [
            OpportunityItem(id=f"legacy-{index}-{name[:20]}", name=name, tag="Medium")
            for index, name in enumerate(_legacy_lines(raw))
        ]
    return [
        OpportunityItem(
            id=item["id"] if isinstance(item.get("id"), str) else generate_id(),
            name=item["name"],
            tag=item.get("tag") if item.get("tag") in PRIORITIES else "Medium",
            description=_str_or_none(item.get("description")),
            point_of_differentiation=_str_or_none(item.get("pointOfDifferentiation")),
            critical_assumptions=_str_or_none(item.get("criticalAssumptions")),
            is_priority=bool(item.get("isPriority")),
        )
        for item in items
        if isinstance(item, dict) and isinstance(item.get("name"), str)
    ]


def serialize_opportunity_items(items: list[OpportunityItem]) -> str:
    return _dump(items)


# ── Related documents ─────────────────────────────────────────────────


def parse_related_documents(raw: str | None) -> list[RelatedDocument]:
    """Related documents have no legacy text form: non-JSON input yields []."""
    items, ok = _load_array(raw)
    if not ok:
        return []
    return [
        RelatedDocument(
            id=item["id"] if isinstance(item.get("id"), str) else generate_id(),
            label=str(item["label"]).strip() or "Document",
            url=str(item["url"]).strip(),
        )
        for item in items
        if isinstance(item, dict) and "label" in item and "url" in item
    ]


def serialize_related_documents(items: list[RelatedDocument]) -> str:
    return _dump(items)


# ── Cell comment keys ─────────────────────────────────────────────────


def comment_key(phase_id: str, row_key: str) -> str:
    return f"{phase_id}{COMMENT_KEY_SEP}{row_key}"


def parse_comment_key(key: str) -> tuple[str, str] | None:
    """Split ``"<phaseId>::<rowKey>"``; None when the separator is absent."""
    phase_id, sep, row_key = key.partition(COMMENT_KEY_SEP)
    if not sep:
        return None
    return phase_id, row_key
