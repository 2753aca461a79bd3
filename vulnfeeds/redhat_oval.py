"""Red Hat OVAL v2 advisories, stored per package and matched by CPE indices."""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NamedTuple

from vulnfeeds.db import Advisory, DataSource, Severity, Status, Store, walk_json_files
from vulnfeeds.redhat_model import CPEMap, CveEntry, Entry, RedHatAdvisory
from vulnfeeds.redhat_parse import RpmInfoTest, parse_tests

log = logging.getLogger(__name__)

ROOT_BUCKET = "Red Hat"
SOURCE_ID = "redhat-oval"
VULN_LIST_DIR = "vuln-list-redhat"
OVAL_DIR = "oval"
CPE_DIR = "cpe"

SOURCE = DataSource(
    id=SOURCE_ID,
    name="Red Hat OVAL v2",
    url="https://www.redhat.com/security/data/oval/v2/",
)

_MODULE = re.compile(r"Module\s+(.*)\s+is enabled")

_SEVERITIES = {
    "low": Severity.LOW,
    "moderate": Severity.MEDIUM,
    "important": Severity.HIGH,
    "critical": Severity.CRITICAL,
}

_STATUSES = {
    "affected": Status.AFFECTED,
    "fix deferred": Status.AFFECTED,
    "under investigation": Status.UNDER_INVESTIGATION,
    "will not fix": Status.WILL_NOT_FIX,
    "out of support scope": Status.END_OF_LIFE,
}


class _Bucket(NamedTuple):
    pkg_name: str
    vuln_id: str


@dataclass
class _Package:
    name: str
    fixed_version: str
    arches: list[str] = field(default_factory=list)


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


def _items(fields: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = fields.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list")
    return [_fields(item) for item in value]


def severity_from_impact(sev: str) -> Severity:
    return _SEVERITIES.get(sev.lower(), Severity.UNKNOWN)


def new_status(state: str) -> Status:
    return _STATUSES.get(state.lower(), Status.UNKNOWN)


def vendor_id(refs: Iterable[Mapping[str, Any]]) -> str:
    """Return the RHSA or RHBA ID among the references, or ""."""
    for ref in refs:
        fields = _fields(ref)
        if _text(fields, "source") in ("RHSA", "RHBA"):
            return _text(fields, "refid")
    return ""


def walk_criterion(criteria: Any, tests: Mapping[str, RpmInfoTest]) -> tuple[str, list[_Package]]:
    """Collect the module name and the affected packages of a criteria tree."""
    fields = _fields(criteria)
    module_name = ""
    packages: list[_Package] = []

    for criterion in _items(fields, "criterions"):
        match = _MODULE.search(_text(criterion, "comment"))
        if match and match.group(1):
            module_name = match.group(1)
            continue
        test = tests.get(_text(criterion, "testref"))
        if test is None or test.signature_key_id:
            continue
        # Affected arches are joined with "|", e.g. "aarch64|ppc64le|x86_64".
        arches = sorted(test.arch.split("|")) if test.arch else []
        packages.append(_Package(name=test.name, fixed_version=test.fixed_version, arches=arches))

    for child in _items(fields, "criterias"):
        child_module, child_packages = walk_criterion(child, tests)
        if child_module:
            module_name = child_module
        packages.extend(child_packages)
    return module_name, packages


def _update_cpes(cpes: Iterable[str], uniq_cpes: CPEMap) -> None:
    for cpe in cpes:
        cpe = cpe.strip()
        if cpe:
            uniq_cpes.add(cpe)


def parse_definitions(
    advisories: Iterable[Mapping[str, Any]],
    tests: Mapping[str, RpmInfoTest],
    uniq_cpes: CPEMap,
) -> dict[_Bucket, Entry]:
    """Turn raw OVAL definitions into one entry per package and vulnerability ID."""
    defs: dict[_Bucket, Entry] = {}
    for raw in advisories:
        definition = _fields(raw)
        if "unaffected" in _text(definition, "id"):
            continue

        metadata = _fields(definition.get("metadata"))
        advisory = _fields(metadata.get("advisory"))
        cpe_list = _texts(advisory, "affectedcpelist")
        state = _text(_fields(_fields(advisory.get("affected")).get("resolution")), "state")
        rhsa_id = vendor_id(_items(metadata, "references"))
        cves = sorted(
            (
                CveEntry(id=_text(cve, "cveid"), severity=severity_from_impact(_text(cve, "impact")))
                for cve in _items(advisory, "cves")
            ),
            key=lambda cve: cve.id,
        )

        module_name, packages = walk_criterion(definition.get("criteria"), tests)
        for package in packages:
            # Modular packages are namespaced, e.g. nodejs:12::npm
            pkg_name = f"{module_name}::{package.name}" if module_name else package.name
            if rhsa_id:
                # Patched: the status is implicitly "fixed" and is not stored.
                defs[_Bucket(pkg_name, rhsa_id)] = Entry(
                    fixed_version=package.fixed_version,
                    cves=list(cves),
                    arches=list(package.arches),
                    affected_cpe_list=list(cpe_list),
                )
            else:
                for cve in cves:
                    defs[_Bucket(pkg_name, cve.id)] = Entry(
                        fixed_version=package.fixed_version,
                        cves=[CveEntry(severity=cve.severity)],
                        arches=list(package.arches),
                        status=new_status(state),
                        affected_cpe_list=list(cpe_list),
                    )

        _update_cpes(cpe_list, uniq_cpes)
    return defs


def _merge_advisories(advisories: dict[_Bucket, RedHatAdvisory], defs: Mapping[_Bucket, Entry]) -> None:
    for bucket, entry in defs.items():
        existing = advisories.get(bucket)
        if existing is None:
            advisories[bucket] = RedHatAdvisory(entries=[entry])
            continue
        found = False
        for old in existing.entries:
            if (
                old.fixed_version == entry.fixed_version
                and old.status == entry.status
                and old.arches == entry.arches
                and old.cves == entry.cves
            ):
                found = True
                old.affected_cpe_list = sorted(set(old.affected_cpe_list) | set(entry.affected_cpe_list))
        if not found:
            existing.entries.append(entry)


def _load_cpe_mapping(path: Path, uniq_cpes: CPEMap) -> dict[str, list[str]]:
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except ValueError as exc:
            raise ValueError(f"JSON parse error: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict) or not all(
        isinstance(cpes, list) and all(isinstance(cpe, str) for cpe in cpes) for cpes in data.values()
    ):
        raise ValueError("JSON parse error: expected an object of CPE name lists")
    for cpes in data.values():
        _update_cpes(cpes, uniq_cpes)
    return data


def _parse_oval_stream(dir: Path, uniq_cpes: CPEMap) -> dict[_Bucket, Entry]:
    log.info("Parsing %s", dir)
    try:
        tests = parse_tests(dir)
    except ValueError as exc:
        raise ValueError(f"failed to parse ovalTests: {exc}") from exc

    definitions_dir = dir / "definitions"
    if not definitions_dir.exists():
        return {}

    definitions = []
    for path in walk_json_files(definitions_dir):
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise ValueError(f"failed to decode {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"failed to decode {path}: definition must be a JSON object")
        definitions.append(data)

    try:
        return parse_definitions(definitions, tests, uniq_cpes)
    except ValueError as exc:
        raise ValueError(f"failed to decode definitions in {definitions_dir}: {exc}") from exc


class VulnSrc:
    """Loads Red Hat OVAL v2 streams and answers queries by repository or NVR."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    @property
    def name(self) -> str:
        return SOURCE_ID

    def update(self, dir: str | os.PathLike[str]) -> None:
        root = Path(dir) / VULN_LIST_DIR
        uniq_cpes = CPEMap()

        try:
            repo_to_cpe = _load_cpe_mapping(root / CPE_DIR / "repository-to-cpe.json", uniq_cpes)
        except ValueError as exc:
            raise ValueError(
                f"unable to store the mapping between repositories and CPE names: {exc}"
            ) from exc
        try:
            nvr_to_cpe = _load_cpe_mapping(root / CPE_DIR / "nvr-to-cpe.json", uniq_cpes)
        except ValueError as exc:
            raise ValueError(f"unable to store the mapping between NVR and CPE names: {exc}") from exc

        advisories: dict[_Bucket, RedHatAdvisory] = {}
        for version_dir in sorted((root / OVAL_DIR).iterdir()):
            for stream in sorted(version_dir.iterdir()):
                if not stream.is_dir():
                    continue
                try:
                    definitions = _parse_oval_stream(stream, uniq_cpes)
                except ValueError as exc:
                    raise ValueError(f"failed to parse OVAL stream: {exc}") from exc
                _merge_advisories(advisories, definitions)

        self._save(repo_to_cpe, nvr_to_cpe, advisories, uniq_cpes)

    def _save(
        self,
        repo_to_cpe: Mapping[str, list[str]],
        nvr_to_cpe: Mapping[str, list[str]],
        advisories: Mapping[_Bucket, RedHatAdvisory],
        uniq_cpes: CPEMap,
    ) -> None:
        cpe_list = uniq_cpes.to_list()
        self.store.put_data_source(ROOT_BUCKET, SOURCE)

        for repo, cpes in repo_to_cpe.items():
            self.store.put_redhat_repositories(repo, cpe_list.indices(cpes))
        for nvr, cpes in nvr_to_cpe.items():
            self.store.put_redhat_nvrs(nvr, cpe_list.indices(cpes))

        for bucket, advisory in advisories.items():
            for entry in advisory.entries:
                # Only indices are stored, to keep the database small.
                entry.affected_cpe_indices = cpe_list.indices(entry.affected_cpe_list)
            self.store.put_advisory_detail(bucket.vuln_id, bucket.pkg_name, [ROOT_BUCKET], advisory)
            self.store.put_vulnerability_id(bucket.vuln_id)

        for index, cpe in enumerate(cpe_list):
            self.store.put_redhat_cpes(index, cpe)

    def _cpe_indices(self, repositories: Iterable[str], nvrs: Iterable[str]) -> list[int]:
        indices: set[int] = set()
        for repo in repositories:
            indices.update(self.store.redhat_repo_to_cpes(repo))
        for nvr in nvrs:
            indices.update(self.store.redhat_nvr_to_cpes(nvr))
        return sorted(indices)

    def get(
        self,
        pkg_name: str,
        repositories: Iterable[str] | None,
        nvrs: Iterable[str] | None,
    ) -> list[Advisory]:
        """Return the advisories of a package that apply to the given repositories or NVRs."""
        try:
            cpe_indices = self._cpe_indices(repositories or (), nvrs or ())
        except ValueError as exc:
            raise ValueError(f"CPE convert error: {exc}") from exc
        if not cpe_indices:
            raise ValueError(
                "unable to find CPE indices. The repositories and NVRs map to no known CPE name"
            )
        wanted = set(cpe_indices)

        results: list[Advisory] = []
        raw = self.store.for_each_advisory([ROOT_BUCKET], pkg_name)
        for vuln_id, (content, source) in sorted(raw.items()):
            try:
                advisory = RedHatAdvisory.from_dict(json.loads(content))
            except (TypeError, ValueError) as exc:
                raise ValueError(f"failed to unmarshal advisory JSON: {exc}") from exc

            for entry in advisory.entries:
                if wanted.isdisjoint(entry.affected_cpe_indices):
                    continue
                for cve in entry.cves:
                    result = Advisory(
                        severity=cve.severity,
                        fixed_version=entry.fixed_version,
                        arches=list(entry.arches),
                        status=entry.status,
                        data_source=source if source is not None else DataSource(),
                    )
                    if vuln_id.startswith("CVE-"):
                        result.vulnerability_id = vuln_id
                    else:
                        result.vulnerability_id = cve.id
                        result.vendor_ids = [vuln_id]
                    results.append(result)
        return results