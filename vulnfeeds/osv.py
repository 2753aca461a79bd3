"""Advisories in the OSV (Open Source Vulnerability) format."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from vulnfeeds.cvss import CVSSError, environmental_score
from vulnfeeds.db import (
    Advisory,
    DataSource,
    Severity,
    Store,
    VulnerabilityDetail,
    bucket_name,
    walk_json_files,
)
from vulnfeeds.osvmodel import RANGE_TYPE_GIT, Affected, Entry, OSVSeverity, parse_entry
from vulnfeeds.osvrange import VersionRange, new_version_range

log = logging.getLogger(__name__)

GO = "go"
NPM = "npm"
PIP = "pip"
RUBYGEMS = "rubygems"
CARGO = "cargo"
COMPOSER = "composer"
MAVEN = "maven"
NUGET = "nuget"
ERLANG = "erlang"
PUB = "pub"
SWIFT = "swift"
BITNAMI = "bitnami"
KUBERNETES = "k8s"
UNKNOWN = "unknown"

_ECOSYSTEMS = {
    "go": GO,
    "npm": NPM,
    "pypi": PIP,
    "rubygems": RUBYGEMS,
    "crates.io": CARGO,
    "packagist": COMPOSER,
    "maven": MAVEN,
    "nuget": NUGET,
    "hex": ERLANG,
    "pub": PUB,
    # Swift advisories may still use the purl type as ecosystem.
    "swifturl": SWIFT,
    "purl-type:swift": SWIFT,
    "bitnami": BITNAMI,
    "kubernetes": KUBERNETES,
}


@dataclass
class OSVAdvisory:
    """An advisory for one package, taken from an OSV entry."""

    ecosystem: str = ""
    pkg_name: str = ""
    vulnerability_id: str = ""
    aliases: list[str] = field(default_factory=list)
    vulnerable_versions: list[str] = field(default_factory=list)
    patched_versions: list[str] = field(default_factory=list)
    severity: Severity = Severity.UNKNOWN
    title: str = ""
    description: str = ""
    references: list[str] = field(default_factory=list)
    cvss_score_v3: float = 0.0
    cvss_vector_v3: str = ""
    # From affected[].database_specific
    database_specific: Any = None


class Transformer(Protocol):
    def transform_advisories(self, advisories: list[OSVAdvisory], entry: Entry) -> list[OSVAdvisory]: ...


def _normalize_pkg_name(ecosystem: str, name: str) -> str:
    if ecosystem == SWIFT:
        name = name.removeprefix("https://").removesuffix(".git")
    elif ecosystem == PIP:
        name = name.lower()
    return name


def convert_ecosystem(ecosystem: str) -> str:
    """Map an OSV ecosystem name to the database's ecosystem name."""
    return _ECOSYSTEMS.get(ecosystem.lower(), UNKNOWN)


def group_vuln_ids(vuln_id: str, aliases: list[str]) -> tuple[list[str], list[str]]:
    """Split IDs into primary IDs (CVE-IDs when present) and the remaining aliases."""
    cve_ids: list[str] = []
    others: list[str] = []
    for candidate in [*aliases, vuln_id]:
        (cve_ids if candidate.startswith("CVE-") else others).append(candidate)
    if not cve_ids:
        return [vuln_id], list(aliases)
    return cve_ids, others


def parse_severity(severities: list[OSVSeverity]) -> tuple[str, float]:
    """Return the first CVSS v3 vector and its score, or ("", 0.0)."""
    for severity in severities:
        if severity.type != "CVSS_V3" or not severity.score:
            continue
        # Vectors sometimes carry a trailing "/".
        vector = severity.score.removesuffix("/")
        if vector.startswith("CVSS:3.0"):
            version = "3.0"
        elif severity.score.startswith("CVSS:3.1"):
            version = "3.1"
        else:
            raise ValueError(
                f'vector:{severity.score} does not have CVSS v3 prefix: "CVSS:3.0" or "CVSS:3.1"'
            )
        try:
            return vector, environmental_score(vector)
        except CVSSError as exc:
            raise ValueError(f"failed to parse CVSSv{version} vector: {exc}") from exc
    return "", 0.0


def _version_contains(ranges: list[VersionRange], version: str) -> bool:
    return any(r.contains(version) for r in ranges)


def parse_affected_versions(affected: Affected) -> tuple[list[str], list[str]]:
    """Return the vulnerable constraints and patched versions of one affected package."""
    patched: list[str] = []
    ranges: list[VersionRange] = []
    for affected_range in affected.ranges:
        if affected_range.type == RANGE_TYPE_GIT:
            continue
        index = 0
        for event in affected_range.events:
            if event.introduced:
                # Each "introduced" event opens a new range.
                ranges.append(new_version_range(affected.package.ecosystem, event.introduced))
                index = len(ranges) - 1
            elif event.fixed:
                _range_at(ranges, index).set_fixed(event.fixed)
                patched.append(event.fixed)
            elif event.last_affected:
                _range_at(ranges, index).set_last_affected(event.last_affected)

    vulnerable = [str(r) for r in ranges]
    for version in affected.versions:
        # Versions already covered by a range are not listed again.
        try:
            covered = _version_contains(ranges, version)
        except ValueError as exc:
            log.error(
                "Version comparison error: ecosystem=%s package=%s error=%s",
                affected.package.ecosystem,
                affected.package.name,
                exc,
            )
            covered = False
        if not covered:
            vulnerable.append(f"={version}")
    return vulnerable, patched


def _range_at(ranges: list[VersionRange], index: int) -> VersionRange:
    if index >= len(ranges):
        raise ValueError("range event without a preceding introduced event")
    return ranges[index]


def parse_affected(
    entry: Entry, vuln_ids: list[str], aliases: list[str], references: list[str]
) -> list[OSVAdvisory]:
    """Build one advisory per ecosystem and package from the affected fields."""
    try:
        vector, score = parse_severity(entry.severities)
    except ValueError as exc:
        raise ValueError(f"failed to decode CVSS vector ({entry.id}): {exc}") from exc

    unique: dict[str, OSVAdvisory] = {}
    for affected in entry.affected:
        ecosystem = convert_ecosystem(affected.package.ecosystem)
        if ecosystem == UNKNOWN:
            continue
        pkg_name = _normalize_pkg_name(ecosystem, affected.package.name)
        vulnerable, patched = parse_affected_versions(affected)

        # affected[].severity overrides the entry-wide severity.
        try:
            affected_vector, affected_score = parse_severity(affected.severities)
        except ValueError as exc:
            raise ValueError(f"failed to decode CVSS vector ({entry.id}): {exc}") from exc
        if affected_vector:
            vector, score = affected_vector, affected_score

        key = f"{ecosystem}/{pkg_name}"
        for vuln_id in vuln_ids:
            existing = unique.get(key)
            if existing is not None:
                # The same package may be repeated with other version ranges.
                unique[key] = replace(
                    existing,
                    vulnerable_versions=[*existing.vulnerable_versions, *vulnerable],
                    patched_versions=[*existing.patched_versions, *patched],
                )
            else:
                unique[key] = OSVAdvisory(
                    ecosystem=ecosystem,
                    pkg_name=pkg_name,
                    vulnerability_id=vuln_id,
                    aliases=list(aliases),
                    vulnerable_versions=list(vulnerable),
                    patched_versions=list(patched),
                    title=entry.summary,
                    description=entry.details,
                    references=list(references),
                    cvss_vector_v3=vector,
                    cvss_score_v3=score,
                    database_specific=affected.database_specific,
                )
    return list(unique.values())


class OSV:
    """Loads a directory of OSV entries into a store."""

    def __init__(
        self,
        dir: str | os.PathLike[str],
        source_id: str,
        data_sources: Mapping[str, DataSource],
        transformer: Transformer | None = None,
        store: Store | None = None,
    ) -> None:
        self.dir = Path(dir)
        self.source_id = source_id
        self.data_sources = dict(data_sources)
        self.transformer = transformer
        self.store = store if store is not None else Store()

    @property
    def name(self) -> str:
        return self.source_id

    def update(self, root: str | os.PathLike[str]) -> None:
        entries = []
        for path in walk_json_files(Path(root) / self.dir):
            if path.suffix != ".json":
                continue
            try:
                entries.append(parse_entry(json.loads(path.read_text(encoding="utf-8"))))
            except ValueError as exc:
                raise ValueError(f"JSON decode error ({path}): {exc}") from exc
        for entry in entries:
            self._commit(entry)

    def _commit(self, entry: Entry) -> None:
        if entry.withdrawn is not None and entry.withdrawn < datetime.now(timezone.utc):
            return

        vuln_ids, aliases = group_vuln_ids(entry.id, entry.aliases)
        try:
            advisories = parse_affected(entry, vuln_ids, aliases, list(entry.references))
        except ValueError as exc:
            raise ValueError(f"failed to parse affected: {exc}") from exc
        if self.transformer is not None:
            try:
                advisories = self.transformer.transform_advisories(advisories, entry)
            except ValueError as exc:
                raise ValueError(f"failed to transform advisories: {exc}") from exc

        for adv in advisories:
            source = self.data_sources.get(adv.ecosystem)
            if source is None:
                continue
            bucket = bucket_name(adv.ecosystem, source.name)
            self.store.put_data_source(bucket, source)
            self.store.put_advisory_detail(
                adv.vulnerability_id,
                adv.pkg_name,
                [bucket],
                Advisory(
                    vendor_ids=list(adv.aliases),
                    vulnerable_versions=list(adv.vulnerable_versions),
                    patched_versions=list(adv.patched_versions),
                ),
            )
            self.store.put_vulnerability_detail(
                adv.vulnerability_id,
                self.source_id,
                VulnerabilityDetail(
                    severity=adv.severity,
                    references=list(adv.references),
                    title=adv.title,
                    description=adv.description,
                    cvss_score_v3=adv.cvss_score_v3,
                    cvss_vector_v3=adv.cvss_vector_v3,
                ),
            )
            self.store.put_vulnerability_id(adv.vulnerability_id)