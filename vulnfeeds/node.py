"""Node.js Ecosystem Security Working Group feed."""

from __future__ import annotations

import errno
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vulnfeeds.db import Advisory, DataSource, Store, VulnerabilityDetail, bucket_name

NODE_DIR = "nodejs-security-wg"

SOURCE = DataSource(
    id="nodejs-security-wg",
    name="Node.js Ecosystem Security Working Group",
    url="https://github.com/nodejs/security-wg",
)

BUCKET_NAME = bucket_name("npm", SOURCE.name)


def parse_cvss_score(value: Any) -> float:
    """Read a CVSS score given as a number, as text like "4.8 (Medium)", or as null (-1)."""
    if isinstance(value, bool):
        return -1.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.split(" ")[0])
    return -1.0


@dataclass
class RawAdvisory:
    id: int = 0
    title: str = ""
    module_name: str = ""
    cves: list[str] = field(default_factory=list)
    vulnerable_versions: str = ""
    patched_versions: str = ""
    overview: str = ""
    recommendation: str = ""
    references: list[str] = field(default_factory=list)
    cvss_score: float = 0.0


def _parse_raw(data: Any) -> RawAdvisory:
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    fields = {key.lower(): value for key, value in data.items()}
    ident = fields.get("id") or 0
    if isinstance(ident, bool) or not isinstance(ident, int):
        raise ValueError("id must be an integer")
    return RawAdvisory(
        id=ident,
        title=fields.get("title") or "",
        module_name=fields.get("module_name") or "",
        cves=list(fields.get("cves") or []),
        vulnerable_versions=fields.get("vulnerable_versions") or "",
        patched_versions=fields.get("patched_versions") or "",
        overview=fields.get("overview") or "",
        recommendation=fields.get("recommendation") or "",
        references=list(fields.get("references") or []),
        cvss_score=parse_cvss_score(fields["cvss_score"]) if "cvss_score" in fields else 0.0,
    )


def _split_ranges(ranges: str) -> list[str]:
    return [part.strip() for part in ranges.split("||")] if ranges else []


def convert_to_generic_advisory(advisory: RawAdvisory) -> Advisory:
    return Advisory(
        vulnerable_versions=_split_ranges(advisory.vulnerable_versions),
        patched_versions=_split_ranges(advisory.patched_versions),
    )


def _json_paths(root: Path) -> list[Path]:
    if not root.exists():
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(root))
    return sorted(path for path in root.rglob("*.json") if path.is_file())


class VulnSrc:
    """Loads npm advisories from the Node.js security working group."""

    name = SOURCE.id

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def update(self, dir: str | os.PathLike[str]) -> None:
        root = Path(dir) / NODE_DIR / "vuln"
        self.store.put_data_source(BUCKET_NAME, SOURCE)
        for path in _json_paths(root):
            try:
                advisory = _parse_raw(json.loads(path.read_text(encoding="utf-8")))
            except ValueError as exc:
                raise ValueError(f"failed to update node vulnerabilities: {path}: {exc}") from exc
            self._commit(advisory)

    def _commit(self, advisory: RawAdvisory) -> None:
        # Node.js core itself has no module name.
        if not advisory.module_name:
            return
        module_name = advisory.module_name.lower()
        vuln_ids = advisory.cves or [f"NSWG-ECO-{advisory.id}"]
        generic = convert_to_generic_advisory(advisory)
        # A zero score means unscored.
        score = advisory.cvss_score if advisory.cvss_score > 0 else -1.0
        for vuln_id in vuln_ids:
            self.store.put_advisory_detail(vuln_id, module_name, [BUCKET_NAME], generic)
            detail = VulnerabilityDetail(
                id=vuln_id,
                cvss_score=score,
                references=list(advisory.references),
                title=advisory.title,
                description=advisory.overview,
            )
            self.store.put_vulnerability_detail(vuln_id, SOURCE.id, detail)
            self.store.put_vulnerability_id(vuln_id)