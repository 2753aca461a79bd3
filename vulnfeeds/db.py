"""In-memory vulnerability database with a bucketed key layout.

Values are kept as JSON text under nested buckets, the way a key/value
store holds them, so broken records surface as decode errors on read.
"""

from __future__ import annotations

import copy
import errno
import json
import os
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Any

DATA_SOURCE_BUCKET = "data-source"
ADVISORY_DETAIL_BUCKET = "advisory-detail"
VULNERABILITY_DETAIL_BUCKET = "vulnerability-detail"
VULNERABILITY_ID_BUCKET = "vulnerability-id"
REDHAT_CPE_BUCKET = "Red Hat CPE"


class Severity(IntEnum):
    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class Status(IntEnum):
    UNKNOWN = 0
    NOT_AFFECTED = 1
    AFFECTED = 2
    FIXED = 3
    UNDER_INVESTIGATION = 4
    WILL_NOT_FIX = 5
    FIX_DEFERRED = 6
    END_OF_LIFE = 7


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _encode(pairs: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """Build a JSON object, leaving out empty values."""
    out: dict[str, Any] = {}
    for key, value in pairs:
        if isinstance(value, IntEnum):
            value = int(value)
        elif isinstance(value, DataSource):
            value = value.to_dict()
        elif isinstance(value, datetime):
            value = _format_time(value)
        elif isinstance(value, (list, tuple)):
            value = list(value)
        if not value:
            continue
        out[key] = value
    return out


@dataclass(frozen=True)
class DataSource:
    """Where a set of advisories comes from."""

    id: str = ""
    name: str = ""
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _encode((("ID", self.id), ("Name", self.name), ("URL", self.url)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DataSource:
        return cls(id=data.get("ID", ""), name=data.get("Name", ""), url=data.get("URL", ""))


@dataclass
class Advisory:
    """What is known about one package for one vulnerability."""

    vulnerability_id: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    status: Status = Status.UNKNOWN
    severity: Severity = Severity.UNKNOWN
    fixed_version: str = ""
    affected_version: str = ""
    vulnerable_versions: list[str] = field(default_factory=list)
    patched_versions: list[str] = field(default_factory=list)
    unaffected_versions: list[str] = field(default_factory=list)
    data_source: DataSource | None = None
    custom: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _encode(
            (
                ("VulnerabilityID", self.vulnerability_id),
                ("VendorIDs", self.vendor_ids),
                ("Arches", self.arches),
                ("Status", self.status),
                ("Severity", self.severity),
                ("FixedVersion", self.fixed_version),
                ("AffectedVersion", self.affected_version),
                ("VulnerableVersions", self.vulnerable_versions),
                ("PatchedVersions", self.patched_versions),
                ("UnaffectedVersions", self.unaffected_versions),
                ("DataSource", self.data_source),
                ("Custom", self.custom),
            )
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Advisory:
        source = data.get("DataSource")
        return cls(
            vulnerability_id=data.get("VulnerabilityID", ""),
            vendor_ids=list(data.get("VendorIDs") or []),
            arches=list(data.get("Arches") or []),
            status=Status(data.get("Status", 0)),
            severity=Severity(data.get("Severity", 0)),
            fixed_version=data.get("FixedVersion", ""),
            affected_version=data.get("AffectedVersion", ""),
            vulnerable_versions=list(data.get("VulnerableVersions") or []),
            patched_versions=list(data.get("PatchedVersions") or []),
            unaffected_versions=list(data.get("UnaffectedVersions") or []),
            data_source=DataSource.from_dict(source) if source else None,
            custom=data.get("Custom"),
        )


@dataclass
class VulnerabilityDetail:
    """Descriptive data about a vulnerability from one source."""

    id: str = ""
    cvss_score: float = 0.0
    cvss_vector: str = ""
    cvss_score_v3: float = 0.0
    cvss_vector_v3: str = ""
    cvss_score_v40: float = 0.0
    cvss_vector_v40: str = ""
    severity: Severity = Severity.UNKNOWN
    severity_v3: Severity = Severity.UNKNOWN
    severity_v40: Severity = Severity.UNKNOWN
    cwe_ids: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    title: str = ""
    description: str = ""
    published_date: datetime | None = None
    last_modified_date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _encode(
            (
                ("ID", self.id),
                ("CvssScore", self.cvss_score),
                ("CvssVector", self.cvss_vector),
                ("CvssScoreV3", self.cvss_score_v3),
                ("CvssVectorV3", self.cvss_vector_v3),
                ("CvssScoreV40", self.cvss_score_v40),
                ("CvssVectorV40", self.cvss_vector_v40),
                ("Severity", self.severity),
                ("SeverityV3", self.severity_v3),
                ("SeverityV40", self.severity_v40),
                ("CweIDs", self.cwe_ids),
                ("References", self.references),
                ("Title", self.title),
                ("Description", self.description),
                ("PublishedDate", self.published_date),
                ("LastModifiedDate", self.last_modified_date),
            )
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VulnerabilityDetail:
        published = data.get("PublishedDate")
        modified = data.get("LastModifiedDate")
        return cls(
            id=data.get("ID", ""),
            cvss_score=data.get("CvssScore", 0.0),
            cvss_vector=data.get("CvssVector", ""),
            cvss_score_v3=data.get("CvssScoreV3", 0.0),
            cvss_vector_v3=data.get("CvssVectorV3", ""),
            cvss_score_v40=data.get("CvssScoreV40", 0.0),
            cvss_vector_v40=data.get("CvssVectorV40", ""),
            severity=Severity(data.get("Severity", 0)),
            severity_v3=Severity(data.get("SeverityV3", 0)),
            severity_v40=Severity(data.get("SeverityV40", 0)),
            cwe_ids=list(data.get("CweIDs") or []),
            references=list(data.get("References") or []),
            title=data.get("Title", ""),
            description=data.get("Description", ""),
            published_date=_parse_time(published) if published else None,
            last_modified_date=_parse_time(modified) if modified else None,
        )


def _json_value(obj: Any) -> Any:
    to_dict = getattr(obj, "to_dict", None)
    return to_dict() if callable(to_dict) else obj


def _decode(node: Any) -> Any:
    if isinstance(node, dict):
        return {key: _decode(value) for key, value in node.items()}
    return json.loads(node)


class Store:
    """Nested buckets of JSON values.

    ``buckets`` may preload the store: nested dicts whose leaves are JSON text.
    """

    def __init__(self, buckets: Mapping[str, Any] | None = None) -> None:
        self._tree: dict[str, Any] = copy.deepcopy(dict(buckets)) if buckets else {}

    def _bucket(self, *path: str) -> dict[str, Any]:
        node = self._tree
        for key in path:
            child = node.setdefault(key, {})
            if not isinstance(child, dict):
                raise ValueError(f"{key!r} is a value, not a bucket")
            node = child
        return node

    def _lookup(self, *path: str) -> Any:
        node: Any = self._tree
        for key in path:
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        return node

    def _put(self, path: tuple[str, ...], value: Any) -> None:
        self._bucket(*path[:-1])[path[-1]] = json.dumps(_json_value(value))

    def put_data_source(self, bucket: str, source: DataSource) -> None:
        self._put((DATA_SOURCE_BUCKET, bucket), source)

    def put_advisory_detail(self, vuln_id: str, pkg_name: str, buckets: Iterable[str], advisory: Any) -> None:
        for bucket in buckets:
            self._put((ADVISORY_DETAIL_BUCKET, vuln_id, bucket, pkg_name), advisory)

    def put_vulnerability_detail(self, vuln_id: str, source_id: str, detail: Any) -> None:
        self._put((VULNERABILITY_DETAIL_BUCKET, vuln_id, source_id), detail)

    def put_vulnerability_id(self, vuln_id: str) -> None:
        self._put((VULNERABILITY_ID_BUCKET, vuln_id), {})

    def for_each_advisory(
        self, buckets: Iterable[str], pkg_name: str
    ) -> dict[str, tuple[str, DataSource | None]]:
        """Map vulnerability IDs to raw advisory JSON and the bucket's data source."""
        wanted = list(buckets)
        details = self._tree.get(ADVISORY_DETAIL_BUCKET, {})
        result: dict[str, tuple[str, DataSource | None]] = {}
        for vuln_id, platforms in details.items():
            if not isinstance(platforms, dict):
                continue
            for bucket in wanted:
                packages = platforms.get(bucket)
                if not isinstance(packages, dict) or pkg_name not in packages:
                    continue
                raw_source = self._lookup(DATA_SOURCE_BUCKET, bucket)
                source = None
                if isinstance(raw_source, str):
                    try:
                        source = DataSource.from_dict(json.loads(raw_source))
                    except (ValueError, AttributeError) as exc:
                        raise ValueError(f"failed to decode data source: {exc}") from exc
                result[vuln_id] = (packages[pkg_name], source)
        return result

    def get_advisories(self, bucket: str, pkg_name: str) -> list[Advisory]:
        advisories = []
        for vuln_id, (content, source) in sorted(self.for_each_advisory([bucket], pkg_name).items()):
            try:
                data = json.loads(content)
                if not isinstance(data, dict):
                    raise ValueError("advisory is not a JSON object")
                advisory = Advisory.from_dict(data)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"failed to unmarshal advisory JSON: {exc}") from exc
            advisory.vulnerability_id = vuln_id
            if source is not None and source != DataSource():
                advisory.data_source = source
            advisories.append(advisory)
        return advisories

    def put_redhat_repositories(self, repo: str, indices: Iterable[int]) -> None:
        self._put((REDHAT_CPE_BUCKET, "repository", repo), list(indices))

    def put_redhat_nvrs(self, nvr: str, indices: Iterable[int]) -> None:
        self._put((REDHAT_CPE_BUCKET, "nvr", nvr), list(indices))

    def put_redhat_cpes(self, index: int, cpe: str) -> None:
        self._put((REDHAT_CPE_BUCKET, "cpe", str(index)), cpe)

    def _cpe_indices(self, kind: str, key: str) -> list[int]:
        raw = self._lookup(REDHAT_CPE_BUCKET, kind, key)
        if not isinstance(raw, str):
            return []
        try:
            return [int(i) for i in json.loads(raw)]
        except (TypeError, ValueError) as exc:
            raise ValueError(f"JSON unmarshal error: {exc}") from exc

    def redhat_repo_to_cpes(self, repo: str) -> list[int]:
        return self._cpe_indices("repository", repo)

    def redhat_nvr_to_cpes(self, nvr: str) -> list[int]:
        return self._cpe_indices("nvr", nvr)

    def get(self, *args: str) -> Any:
        """Return the decoded value or bucket at a key path; KeyError if absent."""
        node: Any = self._tree
        for key in args:
            if not isinstance(node, dict) or key not in node:
                raise KeyError(args)
            node = node[key]
        return _decode(node)


def _iter_files(root: Path) -> Iterator[Path]:
    if root.is_file():
        if root.stat().st_size:
            yield root
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.is_file() and path.stat().st_size:
                yield path


def walk_json_files(root: str | os.PathLike[str]) -> Iterator[Path]:
    """Yield every non-empty file under ``root`` in lexical order."""
    root = Path(root)
    if not root.exists():
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(root))
    return _iter_files(root)


def bucket_name(ecosystem: str, source_name: str) -> str:
    return f"{ecosystem}::{source_name}"