"""Red Hat OVAL advisory records and CPE name bookkeeping."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from vulnfeeds.db import Severity, Status


class CPEMap(set):
    """A set of unique CPE names."""

    def add(self, cpe: str) -> None:
        super().add(cpe)

    def to_list(self) -> CPEList:
        """Return the names in sorted order; a name's position is its stored index."""
        return CPEList(sorted(self))


class CPEList(list):
    """Sorted CPE names, addressed by position."""

    def index(self, cpe: str) -> int:  # type: ignore[override]
        """Return the position of ``cpe``, or -1 when it is not listed."""
        for position, name in enumerate(self):
            if name == cpe:
                return position
        return -1

    def indices(self, cpes: Iterable[str]) -> list[int]:
        """Return the sorted positions of ``cpes``; unknown names give -1."""
        return sorted(self.index(cpe) for cpe in cpes)


def _mapping(data: Any, what: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object")
    return data


@dataclass
class CveEntry:
    """A CVE-ID with the severity it has on one platform."""

    id: str = ""
    severity: Severity = Severity.UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.id:
            result["ID"] = self.id
        if self.severity != Severity.UNKNOWN:
            result["Severity"] = self.severity.value
        return result

    @classmethod
    def from_dict(cls, data: Any) -> CveEntry:
        fields = _mapping(data, "CVE entry")
        severity = fields.get("Severity")
        return cls(
            id=fields.get("ID") or "",
            severity=Severity.UNKNOWN if severity is None else Severity(severity),
        )


@dataclass
class Entry:
    """Advisory information that is the same across a set of platforms.

    Only CPE indices are stored; ``affected_cpe_list`` holds the names
    while the advisory is being built.
    """

    fixed_version: str = ""
    cves: list[CveEntry] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    status: Status = Status.UNKNOWN
    affected_cpe_list: list[str] = field(default_factory=list)
    affected_cpe_indices: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.fixed_version:
            result["FixedVersion"] = self.fixed_version
        result["Cves"] = [cve.to_dict() for cve in self.cves] if self.cves else None
        if self.arches:
            result["Arches"] = list(self.arches)
        if self.affected_cpe_indices:
            result["Affected"] = list(self.affected_cpe_indices)
        if self.status != Status.UNKNOWN:
            result["Status"] = self.status.value
        return result

    @classmethod
    def from_dict(cls, data: Any) -> Entry:
        fields = _mapping(data, "entry")
        status = fields.get("Status")
        return cls(
            fixed_version=fields.get("FixedVersion") or "",
            cves=[CveEntry.from_dict(cve) for cve in fields.get("Cves") or []],
            arches=list(fields.get("Arches") or []),
            status=Status.UNKNOWN if status is None else Status(status),
            affected_cpe_indices=list(fields.get("Affected") or []),
        )


@dataclass
class RedHatAdvisory:
    """All entries stored for one package and one vulnerability."""

    entries: list[Entry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        if not self.entries:
            return {}
        return {"Entries": [entry.to_dict() for entry in self.entries]}

    @classmethod
    def from_dict(cls, data: Any) -> RedHatAdvisory:
        fields = _mapping(data, "advisory")
        return cls(entries=[Entry.from_dict(entry) for entry in fields.get("Entries") or []])