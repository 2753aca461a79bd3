"""Photon OS CVE metadata feed."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from vulnfeeds.db import Advisory, DataSource, Store, VulnerabilityDetail, walk_json_files

log = logging.getLogger(__name__)

PLATFORM_FORMAT = "Photon OS {}"

SOURCE = DataSource(
    id="photon",
    name="Photon OS CVE metadata",
    url="https://packages.vmware.com/photon/photon_cve_metadata/",
)


@dataclass(frozen=True)
class PhotonCVE:
    os_version: str = ""
    cve_id: str = ""
    pkg: str = ""
    cve_score: float = 0.0
    aff_ver: str = ""
    res_ver: str = ""


def _text(fields: dict[str, Any], key: str) -> str:
    value = fields.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _parse_cve(data: Any) -> PhotonCVE:
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    fields = {key.lower(): value for key, value in data.items()}
    score = fields.get("cve_score") or 0.0
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ValueError("cve_score must be a number")
    return PhotonCVE(
        os_version=_text(fields, "os_version"),
        cve_id=_text(fields, "cve_id"),
        pkg=_text(fields, "pkg"),
        cve_score=float(score),
        aff_ver=_text(fields, "aff_ver"),
        res_ver=_text(fields, "res_ver"),
    )


class VulnSrc:
    """Loads Photon OS advisories into a store and reads them back."""

    name = SOURCE.id

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def update(self, dir: str | os.PathLike[str]) -> None:
        root = Path(dir) / "vuln-list" / "photon"
        cves = []
        for path in walk_json_files(root):
            try:
                cves.append(_parse_cve(json.loads(path.read_text(encoding="utf-8"))))
            except ValueError as exc:
                raise ValueError(f"failed to decode Photon JSON: {exc}") from exc
        log.info("Saving Photon DB")
        self._commit(cves)

    def _commit(self, cves: list[PhotonCVE]) -> None:
        for cve in cves:
            platform = PLATFORM_FORMAT.format(cve.os_version)
            self.store.put_data_source(platform, SOURCE)
            self.store.put_advisory_detail(
                cve.cve_id, cve.pkg, [platform], Advisory(fixed_version=cve.res_ver)
            )
            self.store.put_vulnerability_detail(
                cve.cve_id, SOURCE.id, VulnerabilityDetail(cvss_score_v3=cve.cve_score)
            )
            self.store.put_vulnerability_id(cve.cve_id)

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        try:
            return self.store.get_advisories(PLATFORM_FORMAT.format(release), pkg_name)
        except ValueError as exc:
            raise ValueError(f"failed to get Photon advisories: {exc}") from exc