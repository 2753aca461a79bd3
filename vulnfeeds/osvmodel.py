"""Data model for advisories in the OSV (Open Source Vulnerability) format."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

RANGE_TYPE_GIT = "GIT"

ECOSYSTEM_GO = "Go"
ECOSYSTEM_NPM = "npm"
ECOSYSTEM_PYPI = "PyPI"
ECOSYSTEM_RUBYGEMS = "RubyGems"
ECOSYSTEM_CRATES = "crates.io"
ECOSYSTEM_PACKAGIST = "Packagist"
ECOSYSTEM_MAVEN = "Maven"
ECOSYSTEM_NUGET = "NuGet"

_TIMESTAMP = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})"
)


@dataclass(frozen=True)
class Package:
    name: str = ""
    ecosystem: str = ""


@dataclass(frozen=True)
class RangeEvent:
    introduced: str = ""
    fixed: str = ""
    last_affected: str = ""


@dataclass(frozen=True)
class Range:
    type: str = ""
    events: list[RangeEvent] = field(default_factory=list)


@dataclass(frozen=True)
class OSVSeverity:
    type: str = ""
    score: str = ""


@dataclass(frozen=True)
class Affected:
    package: Package = field(default_factory=Package)
    severities: list[OSVSeverity] = field(default_factory=list)
    ranges: list[Range] = field(default_factory=list)
    versions: list[str] = field(default_factory=list)
    database_specific: Any = None


@dataclass(frozen=True)
class Entry:
    """One OSV record. ``references`` holds the reference URLs."""

    id: str = ""
    schema_version: str = ""
    modified: datetime | None = None
    published: datetime | None = None
    withdrawn: datetime | None = None
    aliases: list[str] = field(default_factory=list)
    summary: str = ""
    details: str = ""
    severities: list[OSVSeverity] = field(default_factory=list)
    affected: list[Affected] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    credits: list[str] = field(default_factory=list)
    database_specific: Any = None


def _fields(data: Any, what: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object")
    return {key.lower(): value for key, value in data.items()}


def _text(fields: dict[str, Any], key: str) -> str:
    value = fields.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _texts(fields: dict[str, Any], key: str) -> list[str]:
    value = fields.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key} must be a list of strings")
    return list(value)


def _objects(fields: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = fields.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list")
    return [_fields(item, key) for item in value]


def _parse_time(fields: dict[str, Any], key: str) -> datetime | None:
    value = fields.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a timestamp string")
    match = _TIMESTAMP.fullmatch(value)
    if not match:
        raise ValueError(f"{key}: cannot parse {value!r} as an RFC 3339 time")
    year, month, day, hour, minute, second = (int(match.group(i)) for i in range(1, 7))
    micro = int((match.group(7) or "")[:6].ljust(6, "0"))
    zone = match.group(8)
    if zone in ("Z", "z"):
        tzinfo = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        tzinfo = timezone(sign * offset)
    return datetime(year, month, day, hour, minute, second, micro, tzinfo=tzinfo)


def _parse_severities(fields: dict[str, Any]) -> list[OSVSeverity]:
    return [
        OSVSeverity(type=_text(item, "type"), score=_text(item, "score"))
        for item in _objects(fields, "severity")
    ]


def _parse_range(fields: dict[str, Any]) -> Range:
    events = [
        RangeEvent(
            introduced=_text(event, "introduced"),
            fixed=_text(event, "fixed"),
            last_affected=_text(event, "last_affected"),
        )
        for event in _objects(fields, "events")
    ]
    return Range(type=_text(fields, "type"), events=events)


def _parse_affected(fields: dict[str, Any]) -> Affected:
    package = _fields(fields.get("package"), "package")
    return Affected(
        package=Package(name=_text(package, "name"), ecosystem=_text(package, "ecosystem")),
        severities=_parse_severities(fields),
        ranges=[_parse_range(item) for item in _objects(fields, "ranges")],
        versions=_texts(fields, "versions"),
        database_specific=fields.get("database_specific"),
    )


def parse_entry(data: Any) -> Entry:
    """Build an entry from decoded JSON; raise ValueError on malformed data."""
    if not isinstance(data, dict):
        raise ValueError("OSV entry must be a JSON object")
    fields = _fields(data, "entry")
    return Entry(
        id=_text(fields, "id"),
        schema_version=_text(fields, "schema_version"),
        modified=_parse_time(fields, "modified"),
        published=_parse_time(fields, "published"),
        withdrawn=_parse_time(fields, "withdrawn"),
        aliases=_texts(fields, "aliases"),
        summary=_text(fields, "summary"),
        details=_text(fields, "details"),
        severities=_parse_severities(fields),
        affected=[_parse_affected(item) for item in _objects(fields, "affected")],
        references=[_text(ref, "url") for ref in _objects(fields, "references")],
        credits=[_text(credit, "name") for credit in _objects(fields, "credits")],
        database_specific=fields.get("database_specific"),
    )