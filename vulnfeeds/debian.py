"""Debian Security Tracker feed."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, NamedTuple

from vulnfeeds.db import (
    Advisory,
    DataSource,
    Severity,
    Status,
    Store,
    VulnerabilityDetail,
    walk_json_files,
)
from vulnfeeds.debversion import compare_versions

log = logging.getLogger(__name__)

DEBIAN_DIR = "vuln-list-debian"
PACKAGE_TYPE = "package"
XREF_TYPE = "xref"
DISTRIBUTIONS_FILE = "distributions.json"
SOURCES_DIR = "source"
UPDATE_SOURCES_DIR = "updates-source"
CVE_DIR = "CVE"
DLA_DIR = "DLA"
DSA_DIR = "DSA"
PLATFORM_FORMAT = "debian {}"

# "removed" is deliberately not treated as not-affected.
SKIP_STATUSES = frozenset({"not-affected", "undetermined"})

SOURCE = DataSource(
    id="debian",
    name="Debian Security Tracker",
    url="https://salsa.debian.org/security-tracker-team/security-tracker",
)


@dataclass(frozen=True)
class DebianAdvisory:
    """An advisory as gathered from the tracker, before it is stored."""

    vulnerability_id: str = ""
    platform: str = ""
    pkg_name: str = ""
    vendor_ids: tuple[str, ...] = ()
    state: str = ""
    severity: str = ""
    fixed_version: str = ""
    title: str = ""


class _Bucket(NamedTuple):
    code_name: str = ""
    pkg_name: str = ""
    vuln_id: str = ""
    severity: str = ""


@dataclass(frozen=True)
class _Annotation:
    type: str = ""
    release: str = ""
    package: str = ""
    kind: str = ""
    version: str = ""
    description: str = ""
    severity: str = ""
    bugs: tuple[str, ...] = ()


@dataclass(frozen=True)
class _Bug:
    id: str = ""
    description: str = ""
    annotations: list[_Annotation] = field(default_factory=list)


def _fields(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
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


def _parse_bug(data: Any) -> _Bug:
    fields = _fields(data)
    header = _fields(fields.get("header"))
    raw_annotations = fields.get("annotations") or []
    if not isinstance(raw_annotations, list):
        raise ValueError("annotations must be a list")
    annotations = []
    for raw in raw_annotations:
        ann = _fields(raw)
        annotations.append(
            _Annotation(
                type=_text(ann, "type"),
                release=_text(ann, "release"),
                package=_text(ann, "package"),
                kind=_text(ann, "kind"),
                version=_text(ann, "version"),
                description=_text(ann, "description"),
                severity=_text(ann, "severity"),
                bugs=tuple(_texts(ann, "bugs")),
            )
        )
    return _Bug(id=_text(header, "id"), description=_text(header, "description"), annotations=annotations)


def severity_from_urgency(urgency: str) -> Severity:
    if urgency in ("unimportant", "low", "low*", "low**"):
        return Severity.LOW
    if urgency in ("medium", "medium*", "medium**"):
        return Severity.MEDIUM
    if urgency in ("high", "high*", "high**"):
        return Severity.HIGH
    return Severity.UNKNOWN


def new_status(state: str) -> Status:
    state = state.lower()
    # "end-of-life" is still vulnerable, but reported as such.
    if state in ("no-dsa", "unfixed"):
        return Status.AFFECTED
    if state == "ignored":
        return Status.WILL_NOT_FIX
    if state == "postponed":
        return Status.FIX_DEFERRED
    if state == "end-of-life":
        return Status.END_OF_LIFE
    return Status.UNKNOWN


def has_fixed_version(sid_ver: str, code_ver: str) -> bool:
    """Tell whether a release already ships the version that fixed sid.

    An empty sid version means there is no fix anywhere yet.
    """
    if not sid_ver:
        return False
    try:
        return compare_versions(code_ver, sid_ver) >= 0
    except ValueError as exc:
        raise ValueError(f"version comparison error: {exc}") from exc


def _default_put(store: Store, advisory: DebianAdvisory) -> None:
    if not isinstance(advisory, DebianAdvisory):
        raise TypeError("unknown type")
    detail = Advisory(
        vendor_ids=list(advisory.vendor_ids),
        status=new_status(advisory.state),
        severity=severity_from_urgency(advisory.severity),
        fixed_version=advisory.fixed_version,
    )
    store.put_advisory_detail(advisory.vulnerability_id, advisory.pkg_name, [advisory.platform], detail)
    store.put_vulnerability_detail(
        advisory.vulnerability_id, SOURCE.id, VulnerabilityDetail(title=advisory.title)
    )
    store.put_vulnerability_id(advisory.vulnerability_id)
    store.put_data_source(advisory.platform, SOURCE)


PutFunc = Callable[[Store, DebianAdvisory], None]


class VulnSrc:
    """Builds Debian advisories from the security tracker data.

    ``put`` replaces the way a finished advisory is written to the store.
    """

    name = SOURCE.id

    def __init__(self, store: Store | None = None, put: PutFunc | None = None) -> None:
        self.store = store if store is not None else Store()
        self._put = put if put is not None else _default_put
        # codename -> major version, e.g. "buster" -> "10"
        self._distributions: dict[str, str] = {}
        # vulnerability ID -> short description
        self._details: dict[str, str] = {}
        # (codename, package) -> latest version in that release
        self._pkg_versions: dict[_Bucket, str] = {}
        # (package, vulnerability, severity) -> fixed version in sid, "" if unfixed
        self._sid_fixed_versions: dict[_Bucket, str] = {}
        self._bkt_advisories: dict[_Bucket, DebianAdvisory] = {}
        self._not_affected: set[_Bucket] = set()

    def update(self, dir: str | os.PathLike[str]) -> None:
        root = Path(dir) / DEBIAN_DIR / "tracker"
        self._parse_distributions(root)
        self._parse_sources(root / SOURCES_DIR)
        self._parse_sources(root / UPDATE_SOURCES_DIR)
        self._parse_cve(root)
        log.info("  Parsing DLA JSON files...")
        self._parse_advisories(root / DLA_DIR)
        log.info("  Parsing DSA JSON files...")
        self._parse_advisories(root / DSA_DIR)
        log.info("Saving Debian DB")
        self._commit()
        log.info("Saved Debian DB")

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        try:
            return self.store.get_advisories(PLATFORM_FORMAT.format(release), pkg_name)
        except ValueError as exc:
            raise ValueError(f"failed to get Debian advisories: {exc}") from exc

    def _parse_distributions(self, root: Path) -> None:
        log.info("  Parsing distributions...")
        with open(root / DISTRIBUTIONS_FILE, encoding="utf-8") as f:
            try:
                parsed = json.load(f)
                if not isinstance(parsed, dict):
                    raise ValueError("expected a JSON object")
                majors = {dist: _text(_fields(value), "major-version") for dist, value in parsed.items()}
            except ValueError as exc:
                raise ValueError(f"failed to decode Debian distribution JSON: {exc}") from exc
        for dist, major in majors.items():
            # An empty major version belongs to sid.
            if major:
                self._distributions[dist] = major

    def _parse_sources(self, dir: Path) -> None:
        for code in self._distributions:
            code_path = dir / code
            if not code_path.exists():
                continue
            log.info("  Parsing %s sources...", code)
            for path in walk_json_files(code_path):
                try:
                    fields = _fields(json.loads(path.read_text(encoding="utf-8")))
                    packages = _texts(fields, "package")
                    versions = _texts(fields, "version")
                except ValueError as exc:
                    raise ValueError(f"failed to decode {path}: {exc}") from exc
                if not packages or not versions:
                    continue
                bkt = _Bucket(code_name=code, pkg_name=packages[0])
                version = versions[0]
                stored = self._pkg_versions.get(bkt)
                if stored is not None:
                    try:
                        if compare_versions(stored, version) >= 0:
                            continue
                    except ValueError as exc:
                        raise ValueError(f"version comparison error: {exc}") from exc
                self._pkg_versions[bkt] = version

    def _iter_bugs(self, dir: Path) -> Iterator[_Bug]:
        for path in walk_json_files(dir):
            try:
                yield _parse_bug(json.loads(path.read_text(encoding="utf-8")))
            except ValueError as exc:
                raise ValueError(f"json decode error: {path}: {exc}") from exc

    def _parse_cve(self, root: Path) -> None:
        log.info("  Parsing CVE JSON files...")
        for bug in self._iter_bugs(root / CVE_DIR):
            severities: dict[str, str] = {}
            cve_id = bug.id
            self._details[cve_id] = bug.description.strip("()")
            for ann in bug.annotations:
                if ann.type != PACKAGE_TYPE:
                    continue
                # The release is empty for sid.
                bkt = _Bucket(code_name=ann.release, pkg_name=ann.package, vuln_id=cve_id)
                if ann.kind in SKIP_STATUSES:
                    self._not_affected.add(bkt)
                    continue
                if not ann.release:
                    if ann.severity:
                        severities[ann.package] = ann.severity
                    sid_bkt = _Bucket(pkg_name=ann.package, vuln_id=cve_id, severity=ann.severity)
                    self._sid_fixed_versions[sid_bkt] = ann.version
                    continue

                fixed_version = ann.version
                kind = ann.kind
                latest = self._pkg_versions.get(_Bucket(code_name=ann.release, pkg_name=ann.package))
                if latest is not None:
                    try:
                        released = compare_versions(latest, fixed_version) >= 0
                    except ValueError:
                        released = True
                    # A fix that has not reached the release yet does not count.
                    if not released:
                        fixed_version = ""
                        if kind == "fixed":
                            kind = "unfixed"
                # DLA/DSA may overwrite this later.
                self._bkt_advisories[bkt] = DebianAdvisory(
                    fixed_version=fixed_version,
                    severity=severities.get(ann.package, ""),
                    state="" if fixed_version else kind,
                )

    def _parse_advisories(self, dir: Path) -> None:
        for bug in self._iter_bugs(dir):
            advisory_id = bug.id
            self._details[advisory_id] = bug.description.strip("()")
            cve_ids: list[str] = []
            for ann in bug.annotations:
                if ann.type == XREF_TYPE:
                    cve_ids = list(ann.bugs)
                    continue
                if ann.type != PACKAGE_TYPE:
                    continue
                # Advisories without CVE-IDs are stored under their own ID.
                for vuln_id in cve_ids or [advisory_id]:
                    bkt = _Bucket(code_name=ann.release, pkg_name=ann.package, vuln_id=vuln_id)
                    if ann.kind in SKIP_STATUSES:
                        self._not_affected.add(bkt)
                        continue
                    adv = self._bkt_advisories.get(bkt)
                    if adv is None:
                        adv = DebianAdvisory(fixed_version=ann.version, vendor_ids=(advisory_id,))
                    else:
                        # When several advisories fix the same CVE, the newest fix wins.
                        try:
                            newer = compare_versions(ann.version, adv.fixed_version) > 0
                        except ValueError as exc:
                            raise ValueError(f"version error {advisory_id}: {exc}") from exc
                        if newer:
                            adv = replace(adv, fixed_version=ann.version, state="")
                        adv = replace(adv, vendor_ids=(*adv.vendor_ids, advisory_id))
                    self._bkt_advisories[bkt] = adv

    def _commit(self) -> None:
        for sid_bkt, sid_ver in self._sid_fixed_versions.items():
            pkg_name, cve_id = sid_bkt.pkg_name, sid_bkt.vuln_id
            if _Bucket(pkg_name=pkg_name, vuln_id=cve_id) in self._not_affected:
                continue
            for code in self._distributions:
                bkt = _Bucket(code_name=code, pkg_name=pkg_name, vuln_id=cve_id)
                if bkt in self._not_affected:
                    continue
                existing = self._bkt_advisories.get(bkt)
                # A stated fixed version takes precedence; it is stored below.
                if existing is not None and existing.state == "":
                    continue
                code_ver = self._pkg_versions.get(_Bucket(code_name=code, pkg_name=pkg_name))
                if code_ver is None:
                    continue
                adv = existing if existing is not None else DebianAdvisory()
                try:
                    fixed = has_fixed_version(sid_ver, code_ver)
                except ValueError as exc:
                    raise ValueError(f"version error: {exc}") from exc
                if fixed:
                    # States such as "no-dsa" or "postponed" are wrong here.
                    adv = replace(adv, fixed_version=sid_ver, state="")
                    self._bkt_advisories.pop(bkt, None)
                adv = replace(adv, severity=sid_bkt.severity)
                self._put_advisory(bkt, adv)

        for bkt, adv in self._bkt_advisories.items():
            self._put_advisory(bkt, adv)

    def _put_advisory(self, bkt: _Bucket, advisory: DebianAdvisory) -> None:
        major = self._distributions.get(bkt.code_name)
        if major is None:
            # Stale codename such as squeeze or sarge.
            return
        advisory = replace(
            advisory,
            vulnerability_id=bkt.vuln_id,
            pkg_name=bkt.pkg_name,
            platform=PLATFORM_FORMAT.format(major),
            # The description is short, so it serves as the title.
            title=self._details.get(bkt.vuln_id, ""),
        )
        self._put(self.store, advisory)