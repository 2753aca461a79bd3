"""GitLab Advisory Database (community edition) feed."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vulnfeeds.db import (
    Advisory,
    DataSource,
    Severity,
    Store,
    VulnerabilityDetail,
    bucket_name,
    walk_json_files,
)

log = logging.getLogger(__name__)

GLAD_DIR = "glad"
SUPPORTED_ID_PREFIXES = ("CVE", "GHSA", "GMS")

# GLAD package type -> ecosystem
ECOSYSTEMS = {"conan": "conan"}

SOURCE = DataSource(
    id="glad",
    name="GitLab Advisory Database Community",
    url="https://gitlab.com/gitlab-org/advisories-community",
)


@dataclass(frozen=True)
class GladAdvisory:
    identifier: str = ""
    package_slug: str = ""
    title: str = ""
    description: str = ""
    date: str = ""
    pubdate: str = ""
    affected_range: str = ""
    fixed_versions: list[str] = field(default_factory=list)
    affected_versions: str = ""
    not_impacted: str = ""
    solution: str = ""
    urls: list[str] = field(default_factory=list)
    cvss_v2: str = ""
    cvss_v3: str = ""
    uuid: str = ""


_TEXT_FIELDS = {
    "identifier": "identifier",
    "packageslug": "package_slug",
    "title": "title",
    "description": "description",
    "date": "date",
    "pubdate": "pubdate",
    "affectedrange": "affected_range",
    "affectedversions": "affected_versions",
    "notimpacted": "not_impacted",
    "solution": "solution",
    "cvssv2": "cvss_v2",
    "cvssv3": "cvss_v3",
    "uuid": "uuid",
}
_LIST_FIELDS = {"fixedversions": "fixed_versions", "urls": "urls"}


def _parse_advisory(data: Any) -> GladAdvisory:
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    fields = {key.lower(): value for key, value in data.items()}
    kwargs: dict[str, Any] = {}
    for key, attr in _TEXT_FIELDS.items():
        value = fields.get(key)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{key} must be a string")
        kwargs[attr] = value or ""
    for key, attr in _LIST_FIELDS.items():
        value = fields.get(key)
        if value is not None and not (
            isinstance(value, list) and all(isinstance(v, str) for v in value)
        ):
            raise ValueError(f"{key} must be a list of strings")
        kwargs[attr] = list(value or [])
    return GladAdvisory(**kwargs)


def supported_id(file_name: str) -> bool:
    return file_name.startswith(SUPPORTED_ID_PREFIXES)


class VulnSrc:
    """Loads GitLab advisories into a store."""

    name = SOURCE.id

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def update(self, dir: str | os.PathLike[str]) -> None:
        for pkg_type in ECOSYSTEMS:
            log.info("Updating GitLab Advisory Database %s...", pkg_type.title())
            self._update(pkg_type, Path(dir) / "vuln-list" / GLAD_DIR / pkg_type)

    def _update(self, pkg_type: str, root: Path) -> None:
        glads = []
        for path in walk_json_files(root):
            if not supported_id(path.name):
                continue
            try:
                glads.append(_parse_advisory(json.loads(path.read_text(encoding="utf-8"))))
            except ValueError as exc:
                raise ValueError(f"failed to decode GLAD: {exc}") from exc
        self._commit(pkg_type, glads)

    def _commit(self, pkg_type: str, glads: list[GladAdvisory]) -> None:
        for glad in glads:
            advisory = Advisory(
                vulnerable_versions=[glad.affected_range],
                patched_versions=list(glad.fixed_versions),
            )
            # e.g. "go/github.com/go-ldap/ldap" => "go", "github.com/go-ldap/ldap"
            parts = glad.package_slug.split("/", 1)
            if len(parts) < 2:
                raise ValueError(f"failed to parse package slug: {glad.package_slug}")
            pkg_name = parts[1]
            ecosystem = ECOSYSTEMS.get(pkg_type)
            if ecosystem is None:
                raise ValueError(f"failed to get ecosystem: {pkg_type}")
            bucket = bucket_name(ecosystem, SOURCE.name)
            self.store.put_data_source(bucket, SOURCE)
            self.store.put_advisory_detail(glad.identifier, pkg_name, [bucket], advisory)
            detail = VulnerabilityDetail(
                id=glad.identifier,
                severity=Severity.UNKNOWN,
                references=list(glad.urls),
                title=glad.title,
                description=glad.description,
            )
            self.store.put_vulnerability_detail(glad.identifier, SOURCE.id, detail)
            self.store.put_vulnerability_id(glad.identifier)